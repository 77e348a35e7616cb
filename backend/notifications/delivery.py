"""
Delivery orchestration: preferences -> channel plan -> concurrent fan-out ->
per-channel delivery status rows.

Status rows are written as `pending` before any channel is attempted, then
updated with each channel's outcome, so an interrupted delivery is picked up
by the pending queue sweep.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from models import (
    BulkDeliveryReport,
    Channel,
    DeliveryReport,
    DeliveryState,
    DeliveryStatusRecord,
    Notification,
    NotificationPreferences,
    NotificationRequest,
    NotificationType,
    SendResult,
    UserProfile,
)
from notifications.channel_sender import ChannelDispatcher
from notifications.error_logger import report_notification_error
from notifications.errors import BulkDeliveryError, RecipientNotFound
from notifications.grouping import group_requests_by_recipient
from notifications.preferences import PreferenceResolver
from notifications.retry import RetryPolicy
from shared.utils import utc_now


class ChannelAction(str, Enum):
    SEND = "send"
    DIGEST = "digest"  # folded into the next digest, recorded as skipped
    QUIET_HOURS = "quiet_hours"  # left pending until quiet hours end


def plan_channels(
    preferences: NotificationPreferences,
    notification: Notification,
    now: datetime,
) -> dict[Channel, ChannelAction]:
    """
    Decide what happens on each channel for one notification.

    Channels the user disabled are absent from the plan entirely. In-app is
    always immediate; email and push follow the digest frequency and quiet
    hours (breaking news ignores quiet hours).
    """
    plan: dict[Channel, ChannelAction] = {}

    if preferences.in_app_enabled:
        plan[Channel.IN_APP] = ChannelAction.SEND

    external = []
    if preferences.email_enabled and notification.type not in preferences.email_muted_types:
        external.append(Channel.EMAIL)
    if preferences.push_enabled:
        external.append(Channel.PUSH)

    quiet = (
        notification.type != NotificationType.BREAKING_NEWS
        and preferences.in_quiet_hours(now)
    )
    for channel in external:
        if preferences.wants_digest:
            plan[channel] = ChannelAction.DIGEST
        elif quiet:
            plan[channel] = ChannelAction.QUIET_HOURS
        else:
            plan[channel] = ChannelAction.SEND

    return plan


def _initial_record(
    notification: Notification,
    channel: Channel,
    action: ChannelAction,
    preferences: NotificationPreferences,
    now: datetime,
    lease_until: datetime,
) -> DeliveryStatusRecord:
    record = DeliveryStatusRecord(
        notification_id=notification.id,
        user_id=notification.user_id,
        channel=channel,
    )
    if action == ChannelAction.SEND:
        # Leased: the pending sweep must not pick up a row being sent right now
        record.next_attempt_at = lease_until
    elif action == ChannelAction.DIGEST:
        record.status = DeliveryState.SKIPPED
        record.failure_reason = (
            f"Deferred to {preferences.digest_frequency.value} digest"
        )
    elif action == ChannelAction.QUIET_HOURS:
        record.next_attempt_at = preferences.quiet_hours_end_after(now)
        record.failure_reason = "Deferred until quiet hours end"
    return record


def record_late_result(
    store: Any, record: DeliveryStatusRecord, result: SendResult
) -> None:
    """
    Settle a row whose send finished after it was reported as timed out.

    A late failure changes nothing, the timeout already scheduled a retry.
    A late success marks the row sent so the retry never goes out.
    """
    if not result.success:
        return
    try:
        store.update_delivery_status(record.id, {
            "status": DeliveryState.SENT,
            "next_attempt_at": None,
            "failure_reason": None,
        })
    except Exception as e:
        report_notification_error(
            error_type="delivery",
            error_message=f"{type(e).__name__}: {e}",
            context={"delivery_id": record.id, "channel": record.channel.value},
            summary=f"Could not record late {record.channel.value} success for {record.id}",
        )


class DeliveryOrchestrator:
    """Creates notifications and fans them out to the enabled channels."""

    def __init__(
        self,
        store: Any,
        resolver: PreferenceResolver,
        dispatcher: ChannelDispatcher,
        retry_policy: RetryPolicy,
        max_recipient_workers: int = 8,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.retry_policy = retry_policy
        self.max_recipient_workers = max_recipient_workers
        self.clock = clock

    def _lookup_recipient(self, user_id: str) -> UserProfile:
        user = self.store.get_user_profile(user_id)
        if user is None:
            report_notification_error(
                error_type="recipient",
                error_message=f"User not found: {user_id}",
                context={"user_id": user_id},
                summary=f"Recipient {user_id} not found, notification dropped",
            )
            raise RecipientNotFound(user_id)
        return user

    def deliver(self, request: NotificationRequest) -> DeliveryReport:
        """
        Create one notification and deliver it on every enabled channel.

        Raises:
            RecipientNotFound: If the recipient does not exist
        """
        user = self._lookup_recipient(request.user_id)
        preferences = self.resolver.resolve(user.id)
        notification = self.store.create_notification(request)
        return self._deliver_to_user(user, preferences, [notification])[0]

    def deliver_bulk(self, requests: list[NotificationRequest]) -> BulkDeliveryReport:
        """
        Deliver many notifications, batched per recipient.

        Recipients run in parallel on a bounded pool. A failing recipient is
        recorded in the report; BulkDeliveryError is raised only when every
        recipient failed.
        """
        report = BulkDeliveryReport(total_requests=len(requests))
        if not requests:
            return report

        requests_by_user = group_requests_by_recipient(requests)
        report.recipients = len(requests_by_user)

        delivered: dict[str, list[DeliveryReport]] = {}
        workers = min(self.max_recipient_workers, len(requests_by_user))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="recipient") as pool:
            futures = {
                pool.submit(self._deliver_recipient_batch, user_id, user_requests): user_id
                for user_id, user_requests in requests_by_user.items()
            }
            for future in as_completed(futures):
                user_id = futures[future]
                try:
                    delivered[user_id] = future.result()
                except Exception as e:
                    report.failed_recipients[user_id] = f"{type(e).__name__}: {e}"

        for user_id in requests_by_user:
            report.delivered.extend(delivered.get(user_id, []))

        if report.failed_recipients:
            report_notification_error(
                error_type="bulk_delivery",
                error_message=(
                    f"{len(report.failed_recipients)} of {report.recipients} "
                    "recipient(s) failed"
                ),
                context={"failures": report.failed_recipients},
            )
            if len(report.failed_recipients) == report.recipients:
                raise BulkDeliveryError(report.failed_recipients)

        return report

    def _deliver_recipient_batch(
        self, user_id: str, requests: list[NotificationRequest]
    ) -> list[DeliveryReport]:
        # One profile lookup, one preference lookup and one insert per recipient
        user = self._lookup_recipient(user_id)
        preferences = self.resolver.resolve(user_id)
        notifications = self.store.create_notifications(requests)
        return self._deliver_to_user(user, preferences, notifications)

    def _deliver_to_user(
        self,
        user: UserProfile,
        preferences: NotificationPreferences,
        notifications: list[Notification],
    ) -> list[DeliveryReport]:
        now = self.clock()
        lease_until = now + self.dispatcher.max_attempt_duration
        plans = {n.id: plan_channels(preferences, n, now) for n in notifications}

        records = [
            _initial_record(notification, channel, action, preferences, now, lease_until)
            for notification in notifications
            for channel, action in plans[notification.id].items()
        ]
        inserted = self.store.insert_delivery_statuses(records)
        rows = {(r.notification_id, r.channel): r for r in inserted}

        reports = []
        for notification in notifications:
            plan = plans[notification.id]
            statuses = {
                channel: rows[(notification.id, channel)].status for channel in plan
            }
            to_send = [c for c, action in plan.items() if action == ChannelAction.SEND]
            if to_send:
                results = self.dispatcher.dispatch(
                    user,
                    notification,
                    to_send,
                    on_late_result=self._late_result_recorder(notification, rows),
                )
                for channel, result in results.items():
                    statuses[channel] = self._record_attempt(
                        rows[(notification.id, channel)], notification, result
                    )
            reports.append(
                DeliveryReport(
                    notification_id=notification.id,
                    user_id=notification.user_id,
                    statuses=statuses,
                )
            )
        return reports

    def _late_result_recorder(
        self,
        notification: Notification,
        rows: dict[tuple[str, Channel], DeliveryStatusRecord],
    ) -> Callable[[Channel, SendResult], None]:
        def record(channel: Channel, result: SendResult) -> None:
            record_late_result(self.store, rows[(notification.id, channel)], result)

        return record

    def _record_attempt(
        self, record: DeliveryStatusRecord, notification: Notification, result: Any
    ) -> DeliveryState:
        changes = self.retry_policy.outcome(result, record.attempts + 1, self.clock())
        self.store.update_delivery_status(record.id, changes)
        if not result.success:
            report_notification_error(
                error_type="delivery",
                error_message=result.error or "Unknown error",
                context={
                    "notification_id": notification.id,
                    "user_id": notification.user_id,
                    "channel": record.channel.value,
                    "status": changes["status"].value,
                },
                summary=(
                    f"{record.channel.value} delivery failed for notification "
                    f"{notification.id}"
                ),
            )
        return changes["status"]
