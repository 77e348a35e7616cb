"""Unit tests for Pydantic models."""

import unittest
from datetime import datetime, timezone

from pydantic import ValidationError

from models import (
    Channel,
    DigestArticle,
    DigestContent,
    DigestFrequency,
    Notification,
    NotificationPreferences,
    NotificationPriority,
    NotificationRequest,
    NotificationType,
    SendResult,
    UserProfile,
)
from models.notification import pick_localized
from tests.fixtures.content_factory import create_test_article, create_test_news
from tests.fixtures.user_factory import create_test_notification


class TestNotificationRequest(unittest.TestCase):
    """Tests for NotificationRequest validation at the producer boundary."""

    def test_minimal_valid_request(self):
        request = NotificationRequest(
            user_id="user-1",
            type=NotificationType.NEW_ARTICLE,
            title={"en": "Hello"},
            message={"en": "World"},
            data={"article_id": "a-1"},
        )

        self.assertEqual(request.priority, NotificationPriority.NORMAL)
        self.assertEqual(request.data, {"article_id": "a-1"})

    def test_type_from_string(self):
        request = NotificationRequest(
            user_id="user-1",
            type="breaking_news",
            title={"en": "Hello"},
            message={"en": "World"},
            data={"news_id": "n-1"},
        )

        self.assertEqual(request.type, NotificationType.BREAKING_NEWS)

    def test_unknown_type_rejected(self):
        with self.assertRaises(ValidationError):
            NotificationRequest(
                user_id="user-1",
                type="role_changed",
                title={"en": "Hello"},
                message={"en": "World"},
            )

    def test_missing_payload_field_rejected(self):
        """new_article without article_id is rejected."""
        with self.assertRaises(ValidationError) as ctx:
            NotificationRequest(
                user_id="user-1",
                type=NotificationType.NEW_ARTICLE,
                title={"en": "Hello"},
                message={"en": "World"},
                data={},
            )

        self.assertIn("article_id", str(ctx.exception))

    def test_proposal_decision_must_be_known(self):
        with self.assertRaises(ValidationError):
            NotificationRequest(
                user_id="user-1",
                type=NotificationType.PROPOSAL_REVIEWED,
                title={"en": "Hello"},
                message={"en": "World"},
                data={"proposal_id": "p-1", "decision": "maybe"},
            )

    def test_extra_payload_keys_allowed(self):
        request = NotificationRequest(
            user_id="user-1",
            type=NotificationType.NEW_NEWS,
            title={"en": "Hello"},
            message={"en": "World"},
            data={"news_id": "n-1", "category": "markets"},
        )

        self.assertEqual(request.data["category"], "markets")

    def test_empty_title_rejected(self):
        with self.assertRaises(ValidationError):
            NotificationRequest(
                user_id="user-1",
                type=NotificationType.NEW_NEWS,
                title={},
                message={"en": "World"},
                data={"news_id": "n-1"},
            )

    def test_empty_user_id_rejected(self):
        with self.assertRaises(ValidationError):
            NotificationRequest(
                user_id="",
                type=NotificationType.NEW_NEWS,
                title={"en": "Hello"},
                message={"en": "World"},
                data={"news_id": "n-1"},
            )


class TestStoredNotification(unittest.TestCase):
    """Stored rows are read back without the producer payload checks."""

    def test_stored_row_with_incomplete_payload_loads(self):
        notification = Notification(
            id="n-1",
            user_id="user-1",
            type=NotificationType.NEW_ARTICLE,
            title={"en": "Hello"},
            message={"en": "World"},
            data={},
        )

        self.assertEqual(notification.data, {})
        self.assertEqual(notification.localized_title("es"), "Hello")

    def test_request_with_same_payload_still_rejected(self):
        with self.assertRaises(ValidationError):
            NotificationRequest(
                user_id="user-1",
                type=NotificationType.NEW_ARTICLE,
                title={"en": "Hello"},
                message={"en": "World"},
                data={},
            )


class TestLocalizedText(unittest.TestCase):
    def test_requested_locale(self):
        self.assertEqual(pick_localized({"en": "Hi", "es": "Hola"}, "es"), "Hola")

    def test_falls_back_to_english(self):
        self.assertEqual(pick_localized({"en": "Hi", "es": "Hola"}, "pt"), "Hi")

    def test_falls_back_to_any_value(self):
        self.assertEqual(pick_localized({"es": "Hola"}, "pt"), "Hola")

    def test_notification_helpers(self):
        notification = create_test_notification()

        self.assertEqual(notification.localized_title("es"), "Nuevo artículo publicado")
        self.assertEqual(notification.localized_message(), "Read the latest analysis.")


class TestNotificationPreferences(unittest.TestCase):
    """Tests for defaults, channel flags and quiet hours."""

    def test_defaults(self):
        prefs = NotificationPreferences(user_id="user-1")

        self.assertTrue(prefs.in_app_enabled)
        self.assertTrue(prefs.email_enabled)
        self.assertFalse(prefs.push_enabled)
        self.assertEqual(prefs.digest_frequency, DigestFrequency.IMMEDIATE)
        self.assertFalse(prefs.wants_digest)

    def test_channel_enabled(self):
        prefs = NotificationPreferences(user_id="user-1", push_enabled=True, email_enabled=False)

        self.assertTrue(prefs.channel_enabled(Channel.IN_APP))
        self.assertFalse(prefs.channel_enabled(Channel.EMAIL))
        self.assertTrue(prefs.channel_enabled(Channel.PUSH))

    def test_invalid_timezone_rejected(self):
        with self.assertRaises(ValidationError):
            NotificationPreferences(user_id="user-1", timezone="Mars/Olympus")

    def test_invalid_quiet_hours_rejected(self):
        with self.assertRaises(ValidationError):
            NotificationPreferences(user_id="user-1", quiet_hours_start="25:00")

    def test_no_quiet_hours_configured(self):
        prefs = NotificationPreferences(user_id="user-1")
        now = datetime(2026, 1, 24, 23, 30, tzinfo=timezone.utc)

        self.assertFalse(prefs.in_quiet_hours(now))
        self.assertEqual(prefs.quiet_hours_end_after(now), now)

    def test_quiet_hours_within_day(self):
        prefs = NotificationPreferences(
            user_id="user-1", quiet_hours_start="13:00", quiet_hours_end="15:00"
        )

        self.assertTrue(prefs.in_quiet_hours(datetime(2026, 1, 24, 14, 0, tzinfo=timezone.utc)))
        self.assertFalse(prefs.in_quiet_hours(datetime(2026, 1, 24, 15, 0, tzinfo=timezone.utc)))

    def test_quiet_hours_crossing_midnight(self):
        prefs = NotificationPreferences(
            user_id="user-1", quiet_hours_start="22:00", quiet_hours_end="07:00"
        )

        self.assertTrue(prefs.in_quiet_hours(datetime(2026, 1, 24, 23, 30, tzinfo=timezone.utc)))
        self.assertTrue(prefs.in_quiet_hours(datetime(2026, 1, 24, 6, 59, tzinfo=timezone.utc)))
        self.assertFalse(prefs.in_quiet_hours(datetime(2026, 1, 24, 12, 0, tzinfo=timezone.utc)))

    def test_quiet_hours_end_is_next_morning(self):
        prefs = NotificationPreferences(
            user_id="user-1", quiet_hours_start="22:00", quiet_hours_end="07:00"
        )

        end = prefs.quiet_hours_end_after(datetime(2026, 1, 24, 23, 30, tzinfo=timezone.utc))

        self.assertEqual(end, datetime(2026, 1, 25, 7, 0, tzinfo=timezone.utc))

    def test_quiet_hours_use_user_timezone(self):
        """22:30 in New York is 03:30 UTC the next day."""
        prefs = NotificationPreferences(
            user_id="user-1",
            quiet_hours_start="22:00",
            quiet_hours_end="07:00",
            timezone="America/New_York",
        )
        now = datetime(2026, 1, 24, 3, 30, tzinfo=timezone.utc)

        self.assertTrue(prefs.in_quiet_hours(now))
        self.assertEqual(
            prefs.quiet_hours_end_after(now),
            datetime(2026, 1, 24, 12, 0, tzinfo=timezone.utc),
        )


class TestDigestContent(unittest.TestCase):
    def test_from_items_counts(self):
        content = DigestContent.from_items(
            [create_test_article(), create_test_article()], [create_test_news()]
        )

        self.assertEqual(content.total_count, 3)

    def test_total_count_must_match_items(self):
        with self.assertRaises(ValidationError):
            DigestContent(articles=[create_test_article()], news=[], total_count=2)

    def test_article_requires_title(self):
        with self.assertRaises(ValidationError):
            DigestArticle(id="a-1", title="", published_at=datetime(2026, 1, 24))


class TestSendResultAndProfile(unittest.TestCase):
    def test_sent(self):
        result = SendResult.sent("msg-1")

        self.assertTrue(result.success)
        self.assertEqual(result.provider_message_id, "msg-1")

    def test_failed_defaults_to_not_retryable(self):
        result = SendResult.failed("boom")

        self.assertFalse(result.success)
        self.assertFalse(result.retryable)
        self.assertEqual(result.error, "boom")

    def test_profile_accepts_any_email_string(self):
        """Deliverability is decided by the email channel, not on load."""
        profile = UserProfile(id="user-1", email="ops@localhost")

        self.assertEqual(profile.email, "ops@localhost")

    def test_profile_blank_email_is_missing(self):
        self.assertIsNone(UserProfile(id="user-1", email="").email)

    def test_profile_defaults(self):
        profile = UserProfile(id="user-1")

        self.assertIsNone(profile.email)
        self.assertEqual(profile.preferred_locale, "en")


if __name__ == "__main__":
    unittest.main()
