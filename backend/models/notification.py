"""Pydantic models for the notification system."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from models.types import (
    ClockTime,
    DeliveryID,
    LocaleCode,
    LocalizedText,
    NotificationID,
    UserID,
)

DEFAULT_LOCALE: LocaleCode = "en"


class NotificationType(str, Enum):
    """Domain events that produce user-facing notifications.

    Shared with producers; adding a value is a versioned change.
    """

    NEW_ARTICLE = "new_article"
    NEW_NEWS = "new_news"
    ARTICLE_APPROVED = "article_approved"
    PROPOSAL_REVIEWED = "proposal_reviewed"
    BREAKING_NEWS = "breaking_news"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Channel(str, Enum):
    """Delivery media."""

    IN_APP = "in_app"
    EMAIL = "email"
    PUSH = "push"


class DeliveryState(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class DigestFrequency(str, Enum):
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"


# Payload schemas, one per notification type. Producers may add extra keys,
# but the keys below are required for links and rendering downstream.


class _PayloadBase(BaseModel):
    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)


class ArticlePayload(_PayloadBase):
    """Payload for `new_article` and `article_approved`."""

    article_id: str = Field(..., min_length=1)


class NewsPayload(_PayloadBase):
    """Payload for `new_news` and `breaking_news`."""

    news_id: str = Field(..., min_length=1)


class ProposalReviewedPayload(_PayloadBase):
    proposal_id: str = Field(..., min_length=1)
    decision: str = Field(..., pattern="^(approved|rejected|changes_requested)$")


PAYLOAD_SCHEMAS: dict[NotificationType, type[_PayloadBase]] = {
    NotificationType.NEW_ARTICLE: ArticlePayload,
    NotificationType.ARTICLE_APPROVED: ArticlePayload,
    NotificationType.NEW_NEWS: NewsPayload,
    NotificationType.BREAKING_NEWS: NewsPayload,
    NotificationType.PROPOSAL_REVIEWED: ProposalReviewedPayload,
}


def pick_localized(text: LocalizedText, locale: LocaleCode | None = None) -> str:
    """Return the text for `locale`, then the default locale, then any value."""
    if locale and text.get(locale):
        return text[locale]
    if text.get(DEFAULT_LOCALE):
        return text[DEFAULT_LOCALE]
    return next(iter(text.values()), "")


class _NotificationContent(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: UserID = Field(..., min_length=1)
    type: NotificationType
    title: LocalizedText = Field(..., min_length=1)
    message: LocalizedText = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.NORMAL


class NotificationRequest(_NotificationContent):
    """A producer's request to notify one user.

    The payload is validated against the schema for its type here, at the
    producer boundary.
    """

    @model_validator(mode="after")
    def _validate_payload(self) -> "NotificationRequest":
        schema = PAYLOAD_SCHEMAS[self.type]
        try:
            schema.model_validate(self.data)
        except ValidationError as e:
            fields = ", ".join(
                ".".join(str(part) for part in err["loc"]) for err in e.errors()
            )
            raise ValueError(
                f"Invalid payload for {self.type.value} notification: {fields}"
            ) from e
        return self


class Notification(_NotificationContent):
    """Notification record from database.

    Stored rows are not re-checked against the payload schemas; rows written
    before a schema change must stay deliverable.
    """

    id: NotificationID
    is_read: bool = False
    read_at: datetime | None = None
    created_at: datetime

    def localized_title(self, locale: LocaleCode | None = None) -> str:
        return pick_localized(self.title, locale)

    def localized_message(self, locale: LocaleCode | None = None) -> str:
        return pick_localized(self.message, locale)


class DeliveryStatusRecord(BaseModel):
    """Per-channel delivery state of one notification."""

    id: DeliveryID | None = None
    notification_id: NotificationID
    user_id: UserID
    channel: Channel
    status: DeliveryState = DeliveryState.PENDING
    attempts: int = Field(0, ge=0)
    last_attempt_at: datetime | None = None
    next_attempt_at: datetime | None = None
    failure_reason: str | None = None
    created_at: datetime | None = None


class SendResult(BaseModel):
    """Outcome reported by a channel sender."""

    success: bool
    provider_message_id: str | None = None
    error: str | None = None
    retryable: bool = False

    @classmethod
    def sent(cls, provider_message_id: str | None = None) -> "SendResult":
        return cls(success=True, provider_message_id=provider_message_id)

    @classmethod
    def failed(cls, error: str, retryable: bool = False) -> "SendResult":
        return cls(success=False, error=error, retryable=retryable)


class NotificationPreferences(BaseModel):
    """Per-user channel preferences.

    The defaults below are what a user without a stored row gets.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: UserID
    in_app_enabled: bool = True
    email_enabled: bool = True
    push_enabled: bool = False
    digest_frequency: DigestFrequency = DigestFrequency.IMMEDIATE
    quiet_hours_start: ClockTime | None = Field(
        None, pattern=r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$"
    )
    quiet_hours_end: ClockTime | None = Field(
        None, pattern=r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$"
    )
    timezone: str = "UTC"
    email_muted_types: list[NotificationType] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    def channel_enabled(self, channel: Channel) -> bool:
        return {
            Channel.IN_APP: self.in_app_enabled,
            Channel.EMAIL: self.email_enabled,
            Channel.PUSH: self.push_enabled,
        }[channel]

    @property
    def wants_digest(self) -> bool:
        return self.digest_frequency != DigestFrequency.IMMEDIATE

    def _quiet_window(self) -> tuple[int, int] | None:
        if not self.quiet_hours_start or not self.quiet_hours_end:
            return None
        start_h, start_m = (int(p) for p in self.quiet_hours_start.split(":")[:2])
        end_h, end_m = (int(p) for p in self.quiet_hours_end.split(":")[:2])
        start = start_h * 60 + start_m
        end = end_h * 60 + end_m
        if start == end:
            return None
        return start, end

    def in_quiet_hours(self, now: datetime) -> bool:
        """Whether `now` (timezone-aware) falls inside the user's quiet hours."""
        window = self._quiet_window()
        if window is None:
            return False
        start, end = window
        local = now.astimezone(ZoneInfo(self.timezone))
        minute = local.hour * 60 + local.minute
        if start < end:
            return start <= minute < end
        # Window crosses midnight (e.g. 22:00 -> 08:00)
        return minute >= start or minute < end

    def quiet_hours_end_after(self, now: datetime) -> datetime:
        """Next moment at or after `now` when quiet hours are over."""
        window = self._quiet_window()
        if window is None or not self.in_quiet_hours(now):
            return now
        _, end = window
        tz = ZoneInfo(self.timezone)
        local = now.astimezone(tz)
        end_today = local.replace(
            hour=end // 60, minute=end % 60, second=0, microsecond=0
        )
        if end_today <= local:
            end_today += timedelta(days=1)
        return end_today.astimezone(now.tzinfo)


class DeliveryReport(BaseModel):
    """Channel outcomes for one delivered notification."""

    notification_id: NotificationID
    user_id: UserID
    statuses: dict[Channel, DeliveryState] = Field(default_factory=dict)


class BulkDeliveryReport(BaseModel):
    """Summary of a bulk delivery call."""

    total_requests: int = 0
    recipients: int = 0
    delivered: list[DeliveryReport] = Field(default_factory=list)
    failed_recipients: dict[UserID, str] = Field(default_factory=dict)
