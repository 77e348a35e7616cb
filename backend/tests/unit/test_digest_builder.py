"""
Unit tests for notifications/digest_builder.py

Tests content selection, digest persistence and the digest sweep.
"""

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from models import DigestStatus, DigestType, SendResult
from notifications.digest_builder import DigestBuilder, cycle_start
from notifications.email_sender import EmailSender
from notifications.preferences import PreferenceResolver
from notifications.unsubscribe_tokens import UnsubscribeTokenService
from tests.fixtures.content_factory import create_test_article, create_test_news
from tests.fixtures.fake_senders import FakeDigestSender
from tests.fixtures.in_memory_store import InMemoryStore
from tests.fixtures.user_factory import create_test_preferences_row, create_test_user

# A Saturday
NOW = datetime(2026, 1, 24, 12, 0, tzinfo=timezone.utc)
WINDOW_START = NOW - timedelta(days=1)


class TestCycleStart(unittest.TestCase):
    def test_daily_is_local_midnight(self):
        self.assertEqual(
            cycle_start(DigestType.DAILY, NOW), datetime(2026, 1, 24, tzinfo=timezone.utc)
        )

    def test_weekly_is_monday(self):
        self.assertEqual(
            cycle_start(DigestType.WEEKLY, NOW), datetime(2026, 1, 19, tzinfo=timezone.utc)
        )

    def test_timezone(self):
        """03:00 UTC on the 24th is still the 23rd in New York."""
        now = datetime(2026, 1, 24, 3, 0, tzinfo=timezone.utc)

        self.assertEqual(
            cycle_start(DigestType.DAILY, now, "America/New_York"),
            datetime(2026, 1, 23, 5, 0, tzinfo=timezone.utc),
        )


@patch("builtins.print")
@patch("notifications.digest_builder.report_notification_error")
class TestDigestBuilder(unittest.TestCase):
    """Tests for DigestBuilder."""

    def setUp(self):
        self.store = InMemoryStore()
        self.sender = FakeDigestSender()
        self.user = create_test_user("user-v")
        self.store.add_user(self.user, create_test_preferences_row("user-v", digest_frequency="daily"))

    def _builder(self, **kwargs):
        return DigestBuilder(
            self.store,
            PreferenceResolver(self.store, cache_seconds=0),
            self.sender,
            clock=lambda: NOW,
            **kwargs,
        )

    def test_build_and_send_digest(self, mock_report, mock_print):
        """Two articles and one news item give a 3-item digest, then sent."""
        self.store.articles = [create_test_article("A1"), create_test_article("A2")]
        self.store.news = [create_test_news("N1")]
        builder = self._builder()

        digest = builder.build_digest("user-v", WINDOW_START, now=NOW)

        self.assertEqual(digest.content.total_count, 3)
        self.assertEqual(digest.status, DigestStatus.PENDING)
        self.assertEqual(digest.scheduled_for, datetime(2026, 1, 24, tzinfo=timezone.utc))

        sent = builder.send_digest(digest, self.user)

        self.assertEqual(sent.status, DigestStatus.SENT)
        self.assertEqual(sent.sent_at, NOW)
        stored = self.store.digests[digest.id]
        self.assertEqual(stored.status, DigestStatus.SENT)
        self.assertEqual(stored.sent_at, NOW)
        self.assertEqual(self.sender.sent[0][0], "user-v")

    def test_no_content_no_digest(self, mock_report, mock_print):
        self.store.articles = [create_test_article(published_at=NOW - timedelta(days=3))]

        digest = self._builder().build_digest("user-v", WINDOW_START, now=NOW)

        self.assertIsNone(digest)
        self.assertEqual(self.store.digests, {})

    def test_content_capped_and_ordered(self, mock_report, mock_print):
        self.store.articles = [
            create_test_article(f"A{i}", published_at=NOW - timedelta(hours=i))
            for i in range(1, 8)
        ]
        self.store.news = [
            create_test_news(f"N{i}", trending_score=float(i)) for i in range(1, 8)
        ]

        digest = self._builder(items_per_section=5).build_digest("user-v", WINDOW_START, now=NOW)

        self.assertEqual([a.title for a in digest.content.articles], ["A1", "A2", "A3", "A4", "A5"])
        self.assertEqual([n.title for n in digest.content.news], ["N7", "N6", "N5", "N4", "N3"])
        self.assertEqual(digest.content.total_count, 10)

    def test_same_cycle_reuses_digest(self, mock_report, mock_print):
        self.store.articles = [create_test_article()]
        builder = self._builder()

        first = builder.build_digest("user-v", WINDOW_START, now=NOW)
        second = builder.build_digest("user-v", WINDOW_START, now=NOW + timedelta(hours=1))

        self.assertEqual(first.id, second.id)
        self.assertEqual(len(self.store.digests), 1)

    def test_send_failure_marks_failed(self, mock_report, mock_print):
        self.store.articles = [create_test_article()]
        self.sender.result = SendResult.failed("Resend error: rejected")
        builder = self._builder()
        digest = builder.build_digest("user-v", WINDOW_START, now=NOW)

        result = builder.send_digest(digest, self.user)

        self.assertEqual(result.status, DigestStatus.FAILED)
        self.assertIsNone(self.store.digests[digest.id].sent_at)
        self.assertEqual(mock_report.call_args.kwargs["error_type"], "digest")

    def test_sender_exception_marks_failed(self, mock_report, mock_print):
        self.store.articles = [create_test_article()]

        def explode(user, digest):
            raise RuntimeError("smtp down")

        self.sender.on_send = explode
        builder = self._builder()
        digest = builder.build_digest("user-v", WINDOW_START, now=NOW)

        result = builder.send_digest(digest, self.user)

        self.assertEqual(result.status, DigestStatus.FAILED)

    def test_sent_digest_not_resent(self, mock_report, mock_print):
        self.store.articles = [create_test_article()]
        builder = self._builder()
        digest = builder.send_digest(
            builder.build_digest("user-v", WINDOW_START, now=NOW), self.user
        )

        builder.send_digest(digest, self.user)

        self.assertEqual(len(self.sender.sent), 1)

    def test_sweep(self, mock_report, mock_print):
        self.store.articles = [create_test_article()]
        self.store.news = [create_test_news()]
        self.store.add_user(
            create_test_user("no-email"),
            create_test_preferences_row("no-email", digest_frequency="daily", email_enabled=False),
        )
        self.store.add_user(
            create_test_user("weekly"), create_test_preferences_row("weekly", digest_frequency="weekly")
        )
        # Preference row without a profile
        self.store.preferences["deleted"] = create_test_preferences_row(
            "deleted", digest_frequency="daily"
        )

        stats = self._builder().run_digest_sweep(DigestType.DAILY)

        self.assertEqual(stats, {"sent": 1, "failed": 0, "skipped": 2})
        self.assertEqual([user_id for user_id, _ in self.sender.sent], ["user-v"])

    def test_sweep_isolates_failures(self, mock_report, mock_print):
        self.store.articles = [create_test_article()]
        for user_id in ("user-a", "user-b"):
            self.store.add_user(
                create_test_user(user_id),
                create_test_preferences_row(user_id, digest_frequency="daily"),
            )

        def fail_for_a(user, digest):
            if user.id == "user-a":
                raise RuntimeError("provider down")

        self.sender.on_send = fail_for_a

        stats = self._builder().run_digest_sweep(DigestType.DAILY)

        self.assertEqual(stats, {"sent": 2, "failed": 1, "skipped": 0})

    @patch("notifications.email_sender.resend.Emails.send")
    def test_sweep_continues_past_undeliverable_address(self, mock_send, mock_report, mock_print):
        mock_send.return_value = {"id": "email_789"}
        self.store.articles = [create_test_article()]
        self.store.add_user(
            create_test_user("bad-address", email="ops@localhost"),
            create_test_preferences_row("bad-address", digest_frequency="daily"),
        )
        self.sender = EmailSender(
            api_key="re_test_key",
            from_email="digest@test.example.com",
            frontend_base_url="https://test.example.com",
            tokens=UnsubscribeTokenService(secret_key="test-secret"),
        )

        stats = self._builder().run_digest_sweep(DigestType.DAILY)

        self.assertEqual(stats, {"sent": 1, "failed": 1, "skipped": 0})
        self.assertEqual(mock_send.call_args[0][0]["to"], "test@example.com")
        statuses = {d.user_id: d.status for d in self.store.digests.values()}
        self.assertEqual(statuses["user-v"], DigestStatus.SENT)
        self.assertEqual(statuses["bad-address"], DigestStatus.FAILED)

    def test_sweep_twice_sends_once(self, mock_report, mock_print):
        self.store.articles = [create_test_article()]
        builder = self._builder()

        builder.run_digest_sweep(DigestType.DAILY)
        stats = builder.run_digest_sweep(DigestType.DAILY)

        self.assertEqual(stats, {"sent": 0, "failed": 0, "skipped": 1})
        self.assertEqual(len(self.sender.sent), 1)

    def test_sweep_without_content(self, mock_report, mock_print):
        stats = self._builder().run_digest_sweep(DigestType.DAILY)

        self.assertEqual(stats, {"sent": 0, "failed": 0, "skipped": 1})
        self.assertEqual(self.store.digests, {})

    def test_weekly_sweep_uses_seven_day_window(self, mock_report, mock_print):
        self.store.preferences["user-v"]["digest_frequency"] = "weekly"
        self.store.articles = [create_test_article(published_at=NOW - timedelta(days=5))]

        stats = self._builder().run_digest_sweep(DigestType.WEEKLY)

        self.assertEqual(stats["sent"], 1)
        [digest] = self.store.digests.values()
        self.assertEqual(digest.digest_type, DigestType.WEEKLY)
        self.assertEqual(digest.scheduled_for, datetime(2026, 1, 19, tzinfo=timezone.utc))

    def test_sweep_with_no_users(self, mock_report, mock_print):
        self.store.preferences.clear()

        self.assertEqual(
            self._builder().run_digest_sweep(DigestType.DAILY),
            {"sent": 0, "failed": 0, "skipped": 0},
        )


if __name__ == "__main__":
    unittest.main()
