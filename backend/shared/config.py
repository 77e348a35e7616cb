"""Environment-driven settings for the notification engine."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_FRONTEND_BASE_URL = "https://stakeados.com"
DEFAULT_FROM_EMAIL = "notifications@stakeados.com"
DEFAULT_PUSH_API_URL = "https://exp.host/--/api/v2/push/send"


class NotifierSettings(BaseModel):
    """All tunables, read once at the composition root."""

    supabase_url: str | None = None
    supabase_service_key: str | None = None

    resend_api_key: str | None = None
    from_email: str = DEFAULT_FROM_EMAIL
    frontend_base_url: str = DEFAULT_FRONTEND_BASE_URL

    unsubscribe_max_age_days: int = Field(90, ge=1)

    expo_access_token: str | None = None
    push_api_url: str = DEFAULT_PUSH_API_URL

    max_recipient_workers: int = Field(8, ge=1)
    channel_workers: int = Field(16, ge=1)
    channel_timeout_seconds: float = Field(10.0, gt=0)

    pending_max_attempts: int = Field(5, ge=1)
    pending_base_delay_seconds: int = Field(300, ge=1)
    pending_max_delay_seconds: int = Field(6 * 60 * 60, ge=1)

    preference_cache_seconds: float = Field(60.0, ge=0)

    digest_timezone: str = "UTC"
    digest_items_per_section: int = Field(5, ge=1)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def load_settings() -> NotifierSettings:
    """Build settings from environment variables (and .env, if present)."""
    return NotifierSettings(
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY"),
        resend_api_key=os.getenv("RESEND_API_KEY"),
        from_email=os.getenv("NOTIFICATION_FROM_EMAIL", DEFAULT_FROM_EMAIL),
        frontend_base_url=os.getenv("FRONTEND_BASE_URL", DEFAULT_FRONTEND_BASE_URL),
        unsubscribe_max_age_days=_env_int("UNSUBSCRIBE_MAX_AGE_DAYS", 90),
        expo_access_token=os.getenv("EXPO_ACCESS_TOKEN"),
        push_api_url=os.getenv("PUSH_API_URL", DEFAULT_PUSH_API_URL),
        max_recipient_workers=_env_int("MAX_RECIPIENT_WORKERS", 8),
        channel_workers=_env_int("CHANNEL_WORKERS", 16),
        channel_timeout_seconds=_env_float("CHANNEL_TIMEOUT_SECONDS", 10.0),
        pending_max_attempts=_env_int("PENDING_MAX_ATTEMPTS", 5),
        pending_base_delay_seconds=_env_int("PENDING_BASE_DELAY_SECONDS", 300),
        pending_max_delay_seconds=_env_int("PENDING_MAX_DELAY_SECONDS", 6 * 60 * 60),
        preference_cache_seconds=_env_float("PREFERENCE_CACHE_SECONDS", 60.0),
        digest_timezone=os.getenv("DIGEST_TIMEZONE", "UTC"),
        digest_items_per_section=_env_int("DIGEST_ITEMS_PER_SECTION", 5),
    )
