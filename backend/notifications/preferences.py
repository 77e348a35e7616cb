"""
Notification preference resolution.

A user without a stored row, or with a row that cannot be interpreted, gets
the platform defaults: in-app on, email on, push off, immediate delivery.
"""

import threading
import time
from typing import Any

from pydantic import ValidationError

from models import NotificationPreferences, NotificationType
from notifications.error_logger import report_notification_error
from notifications.errors import InvalidPreferenceState

PREFERENCE_COLUMNS = (
    "in_app_enabled",
    "email_enabled",
    "push_enabled",
    "digest_frequency",
    "quiet_hours_start",
    "quiet_hours_end",
    "timezone",
    "email_muted_types",
)


def default_preferences(user_id: str) -> NotificationPreferences:
    return NotificationPreferences(user_id=user_id)


def preferences_from_row(user_id: str, row: dict[str, Any]) -> NotificationPreferences:
    """
    Interpret a stored preference row.

    NULL columns fall back to the default for that column.

    Raises:
        InvalidPreferenceState: If the row holds values that do not validate
    """
    values = {key: row[key] for key in PREFERENCE_COLUMNS if row.get(key) is not None}
    try:
        return NotificationPreferences(user_id=user_id, **values)
    except ValidationError as e:
        raise InvalidPreferenceState(
            f"Invalid notification preferences for user {user_id}: {e.error_count()} error(s)"
        ) from e


class PreferenceResolver:
    """Resolves (and caches) per-user notification preferences.

    Safe to share between worker threads; the lock only guards the cache,
    never a database call.
    """

    def __init__(self, store: Any, cache_seconds: float = 60.0):
        self.store = store
        self.cache_seconds = cache_seconds
        self._cache: dict[str, tuple[float, NotificationPreferences]] = {}
        self._lock = threading.Lock()

    def _cached(self, user_id: str) -> NotificationPreferences | None:
        if self.cache_seconds <= 0:
            return None
        with self._lock:
            entry = self._cache.get(user_id)
            if entry is None:
                return None
            stored_at, preferences = entry
            if time.monotonic() - stored_at > self.cache_seconds:
                del self._cache[user_id]
                return None
            return preferences

    def _remember(self, preferences: NotificationPreferences) -> None:
        if self.cache_seconds <= 0:
            return
        with self._lock:
            self._cache[preferences.user_id] = (time.monotonic(), preferences)

    def invalidate(self, user_id: str | None = None) -> None:
        with self._lock:
            if user_id is None:
                self._cache.clear()
            else:
                self._cache.pop(user_id, None)

    def resolve(self, user_id: str) -> NotificationPreferences:
        """
        Return the effective preferences for a user.

        Store errors propagate (the persistence layer being down is not a
        preference problem); malformed rows resolve to defaults.
        """
        cached = self._cached(user_id)
        if cached is not None:
            return cached

        row = self.store.get_preferences(user_id)
        if row is None:
            preferences = default_preferences(user_id)
        else:
            try:
                preferences = preferences_from_row(user_id, row)
            except InvalidPreferenceState as e:
                report_notification_error(
                    error_type="preferences",
                    error_message=str(e),
                    context={"user_id": user_id, "row": row},
                    summary=f"Using default preferences for user {user_id}",
                )
                preferences = default_preferences(user_id)

        self._remember(preferences)
        return preferences

    def update(self, user_id: str, **changes: Any) -> NotificationPreferences:
        """Apply `changes` on top of the current preferences and store them."""
        current = self.resolve(user_id)
        updated = NotificationPreferences.model_validate(
            {**current.model_dump(), **changes, "user_id": user_id}
        )
        self.store.upsert_preferences(updated.model_dump(mode="json"))
        self.invalidate(user_id)
        return updated

    def mute_email_type(
        self, user_id: str, notification_type: NotificationType
    ) -> NotificationPreferences:
        current = self.resolve(user_id)
        if notification_type in current.email_muted_types:
            return current
        return self.update(
            user_id, email_muted_types=[*current.email_muted_types, notification_type]
        )

    def reset_to_defaults(self, user_id: str) -> NotificationPreferences:
        self.store.delete_preferences(user_id)
        self.invalidate(user_id)
        return default_preferences(user_id)
