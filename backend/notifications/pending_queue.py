"""
Pending-queue processing: the retry mechanism for channel deliveries.

Scans due `pending` delivery rows for one channel, oldest first, and
re-attempts them. Only pending rows are selected and every update is
guarded on the row still being pending, so a row that reached `sent` or
`failed` is never delivered again. A row is claimed (its next attempt
pushed past the send window) before it is sent, so overlapping sweeps do
not both send it.
"""

from datetime import datetime
from typing import Any, Callable

from models import Channel, DeliveryState, DeliveryStatusRecord, Notification
from notifications.channel_sender import ChannelDispatcher
from notifications.delivery import ChannelAction, plan_channels, record_late_result
from notifications.error_logger import report_notification_error
from notifications.preferences import PreferenceResolver
from notifications.retry import RetryPolicy
from shared.utils import utc_now


class PendingQueueProcessor:
    def __init__(
        self,
        store: Any,
        resolver: PreferenceResolver,
        dispatcher: ChannelDispatcher,
        retry_policy: RetryPolicy,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.retry_policy = retry_policy
        self.clock = clock

    def process_pending(self, channel: Channel, limit: int = 100) -> int:
        """
        Re-attempt up to `limit` due pending rows of `channel`.

        A row counts as processed when it was attempted or resolved to a
        terminal state. Rows pushed back by quiet hours, or resolved by a
        concurrent sweep in the meantime, are not counted.

        Args:
            channel: Channel whose rows are scanned
            limit: Maximum number of rows to scan

        Returns:
            Number of rows processed
        """
        if limit <= 0:
            return 0

        pending = self.store.get_pending_deliveries(channel, limit, self.clock())
        processed = 0

        for record, notification in pending:
            try:
                if self._process_row(record, notification):
                    processed += 1
            except Exception as e:
                report_notification_error(
                    error_type="retry",
                    error_message=f"{type(e).__name__}: {e}",
                    context={
                        "delivery_id": record.id,
                        "notification_id": record.notification_id,
                        "user_id": record.user_id,
                        "channel": channel.value,
                    },
                    summary=f"Could not retry delivery {record.id}",
                )

        return processed

    def _process_row(
        self, record: DeliveryStatusRecord, notification: Notification
    ) -> bool:
        now = self.clock()

        user = self.store.get_user_profile(record.user_id)
        if user is None:
            return self.store.update_delivery_status(record.id, {
                "status": DeliveryState.FAILED,
                "last_attempt_at": now,
                "next_attempt_at": None,
                "failure_reason": f"User not found: {record.user_id}",
            })

        # Preferences may have changed since the row was created
        preferences = self.resolver.resolve(record.user_id)
        action = plan_channels(preferences, notification, now).get(record.channel)

        if action is None:
            return self.store.update_delivery_status(record.id, {
                "status": DeliveryState.SKIPPED,
                "next_attempt_at": None,
                "failure_reason": "Channel disabled by user",
            })
        if action == ChannelAction.DIGEST:
            return self.store.update_delivery_status(record.id, {
                "status": DeliveryState.SKIPPED,
                "next_attempt_at": None,
                "failure_reason": f"Deferred to {preferences.digest_frequency.value} digest",
            })
        if action == ChannelAction.QUIET_HOURS:
            self.store.update_delivery_status(record.id, {
                "next_attempt_at": preferences.quiet_hours_end_after(now),
            })
            return False

        # Claim the row first so an overlapping sweep cannot send it too
        lease_until = now + self.dispatcher.max_attempt_duration
        if not self.store.claim_delivery(record.id, record.next_attempt_at, lease_until):
            return False

        result = self.dispatcher.dispatch(
            user,
            notification,
            [record.channel],
            on_late_result=lambda _channel, late: record_late_result(
                self.store, record, late
            ),
        )[record.channel]
        changes = self.retry_policy.outcome(result, record.attempts + 1, self.clock())
        updated = self.store.update_delivery_status(record.id, changes)

        if updated and not result.success:
            report_notification_error(
                error_type="retry",
                error_message=result.error or "Unknown error",
                context={
                    "delivery_id": record.id,
                    "notification_id": notification.id,
                    "user_id": record.user_id,
                    "channel": record.channel.value,
                    "attempts": changes["attempts"],
                    "status": changes["status"].value,
                },
                summary=(
                    f"Retry {changes['attempts']} of {record.channel.value} "
                    f"delivery {record.id} failed"
                ),
            )
        return updated
