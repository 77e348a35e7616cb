"""Pydantic models for recipients."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.types import LocaleCode, UserID


class UserProfile(BaseModel):
    """Recipient profile as looked up from the user store.

    `email` is stored as-is; whether it is deliverable is the email
    channel's concern, so a bad address never blocks the other channels.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    id: UserID
    email: str | None = None
    full_name: str | None = None
    preferred_locale: LocaleCode = "en"

    @field_validator("email")
    @classmethod
    def _blank_email_is_missing(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("preferred_locale", mode="before")
    @classmethod
    def _default_locale(cls, value: str | None) -> str:
        return value or "en"


class PushSubscription(BaseModel):
    """A device registered to receive push notifications."""

    id: str
    user_id: UserID
    device_token: str = Field(..., min_length=1)
    user_agent: str | None = None
    last_used: datetime | None = None
