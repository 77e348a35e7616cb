"""
Retry policy for channel delivery attempts.

Retryable failures stay `pending` with an exponentially growing delay until
max_attempts is reached; then the row is dead-lettered as `failed`.
"""

from datetime import datetime, timedelta
from typing import Any

from models import DeliveryState, SendResult


class RetryPolicy:
    """Exponential backoff with a cap and a maximum number of attempts."""

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay_seconds: int = 300,
        max_delay_seconds: int = 6 * 60 * 60,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = timedelta(seconds=base_delay_seconds)
        self.max_delay = timedelta(seconds=max_delay_seconds)

    def delay_for(self, attempts: int) -> timedelta:
        """Delay before the next try, after `attempts` failed attempts."""
        delay = self.base_delay * (2 ** max(attempts - 1, 0))
        return min(delay, self.max_delay)

    def outcome(
        self, result: SendResult, attempts: int, now: datetime
    ) -> dict[str, Any]:
        """
        Status row changes for an attempt that just finished.

        Args:
            result: What the channel sender reported
            attempts: Attempt count including this one
            now: Time of the attempt

        Returns:
            Column changes for the delivery status row
        """
        changes: dict[str, Any] = {
            "attempts": attempts,
            "last_attempt_at": now,
        }
        if result.success:
            changes.update(
                status=DeliveryState.SENT, next_attempt_at=None, failure_reason=None
            )
        elif result.retryable and attempts < self.max_attempts:
            changes.update(
                status=DeliveryState.PENDING,
                next_attempt_at=now + self.delay_for(attempts),
                failure_reason=result.error,
            )
        else:
            reason = result.error or "Unknown error"
            if result.retryable:
                reason = f"{reason} (gave up after {attempts} attempts)"
            changes.update(
                status=DeliveryState.FAILED, next_attempt_at=None, failure_reason=reason
            )
        return changes
