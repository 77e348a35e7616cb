from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a database timestamp (ISO string or datetime) into an aware datetime.

    Naive values are assumed to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.isoparse(str(value))
        except (ValueError, OverflowError, TypeError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def print_summary(title: str, stats: dict[str, int]) -> None:
    """Print processing summary."""
    print(f"\n{'=' * 60}")
    print(f"[{datetime.now()}] {title}")
    print(f"{'=' * 60}")
    for key, value in stats.items():
        print(f"{key.replace('_', ' ').capitalize() + ':':<12}{value}")
    print(f"{'Total:':<12}{sum(stats.values())}")
    print(f"{'=' * 60}\n")
