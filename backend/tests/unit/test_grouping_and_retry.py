"""
Unit tests for notifications/grouping.py and notifications/retry.py
"""

import unittest
from datetime import datetime, timedelta, timezone

from models import DeliveryState, SendResult
from notifications.grouping import group_requests_by_recipient
from notifications.retry import RetryPolicy
from tests.fixtures.user_factory import create_test_request

NOW = datetime(2026, 1, 24, 12, 0, tzinfo=timezone.utc)


class TestGroupRequestsByRecipient(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(group_requests_by_recipient([]), {})

    def test_groups_preserve_order(self):
        a1 = create_test_request("alice", title={"en": "a1"})
        b1 = create_test_request("bob", title={"en": "b1"})
        a2 = create_test_request("alice", title={"en": "a2"})

        grouped = group_requests_by_recipient([a1, b1, a2])

        self.assertEqual(list(grouped), ["alice", "bob"])
        self.assertEqual([r.title["en"] for r in grouped["alice"]], ["a1", "a2"])
        self.assertEqual(grouped["bob"], [b1])

    def test_every_request_kept(self):
        requests = [create_test_request(f"user-{i % 3}") for i in range(10)]

        grouped = group_requests_by_recipient(requests)

        self.assertEqual(sum(len(v) for v in grouped.values()), 10)


class TestRetryPolicy(unittest.TestCase):
    """Tests for RetryPolicy backoff and dead-lettering."""

    def setUp(self):
        self.policy = RetryPolicy(max_attempts=3, base_delay_seconds=60, max_delay_seconds=150)

    def test_delay_grows_and_is_capped(self):
        self.assertEqual(self.policy.delay_for(1), timedelta(seconds=60))
        self.assertEqual(self.policy.delay_for(2), timedelta(seconds=120))
        self.assertEqual(self.policy.delay_for(3), timedelta(seconds=150))

    def test_invalid_max_attempts(self):
        with self.assertRaises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_success(self):
        changes = self.policy.outcome(SendResult.sent("id"), 1, NOW)

        self.assertEqual(changes["status"], DeliveryState.SENT)
        self.assertEqual(changes["attempts"], 1)
        self.assertEqual(changes["last_attempt_at"], NOW)
        self.assertIsNone(changes["failure_reason"])

    def test_retryable_failure_stays_pending(self):
        changes = self.policy.outcome(SendResult.failed("timeout", retryable=True), 2, NOW)

        self.assertEqual(changes["status"], DeliveryState.PENDING)
        self.assertEqual(changes["next_attempt_at"], NOW + timedelta(seconds=120))
        self.assertEqual(changes["failure_reason"], "timeout")

    def test_permanent_failure_fails_immediately(self):
        changes = self.policy.outcome(SendResult.failed("bad address"), 1, NOW)

        self.assertEqual(changes["status"], DeliveryState.FAILED)
        self.assertIsNone(changes["next_attempt_at"])
        self.assertEqual(changes["failure_reason"], "bad address")

    def test_retryable_failure_gives_up_after_max_attempts(self):
        changes = self.policy.outcome(SendResult.failed("timeout", retryable=True), 3, NOW)

        self.assertEqual(changes["status"], DeliveryState.FAILED)
        self.assertIn("gave up after 3 attempts", changes["failure_reason"])


if __name__ == "__main__":
    unittest.main()
