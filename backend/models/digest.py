"""Pydantic models for digest emails."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models.types import ArticleID, DigestID, NewsID, UserID


class DigestType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class DigestStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class DigestArticle(BaseModel):
    """Published article summary included in a digest."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: ArticleID
    title: str = Field(..., min_length=1)
    summary: str | None = None
    category: str | None = None
    published_at: datetime


class DigestNewsItem(BaseModel):
    """News item summary included in a digest."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: NewsID
    title: str = Field(..., min_length=1)
    summary: str | None = None
    source_name: str | None = None
    published_at: datetime
    trending_score: float | None = None


class DigestContent(BaseModel):
    """Ordered content bundle of a digest."""

    articles: list[DigestArticle] = Field(default_factory=list)
    news: list[DigestNewsItem] = Field(default_factory=list)
    total_count: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _check_total(self) -> "DigestContent":
        expected = len(self.articles) + len(self.news)
        if self.total_count != expected:
            raise ValueError(
                f"total_count {self.total_count} does not match {expected} items"
            )
        return self

    @classmethod
    def from_items(
        cls, articles: list[DigestArticle], news: list[DigestNewsItem]
    ) -> "DigestContent":
        return cls(articles=articles, news=news, total_count=len(articles) + len(news))


class NotificationDigest(BaseModel):
    """Digest record from database."""

    id: DigestID
    user_id: UserID
    digest_type: DigestType
    content: DigestContent
    scheduled_for: datetime
    sent_at: datetime | None = None
    status: DigestStatus = DigestStatus.PENDING
    created_at: datetime | None = None
