"""
Push notifications via the Expo push API.

One message is sent per registered device of the recipient. Delivery counts
as sent when at least one device accepted it; devices the provider reports as
no longer registered are removed.
"""

from typing import Any, Callable

import requests

from models import (
    Channel,
    Notification,
    NotificationPriority,
    NotificationType,
    PushSubscription,
    SendResult,
    UserProfile,
)
from notifications.channel_sender import ChannelSender
from notifications.error_logger import report_notification_error
from notifications.links import notification_url
from shared.utils import utc_now

# Maximum body length accepted by mobile platforms without truncation
MAX_BODY_LENGTH = 240

PERMANENT_DEVICE_ERRORS = {"DeviceNotRegistered", "InvalidCredentials"}


class PushSender(ChannelSender):
    """Push channel backed by an Expo-compatible HTTP API."""

    channel = Channel.PUSH

    def __init__(
        self,
        store: Any,
        api_url: str,
        frontend_base_url: str,
        access_token: str | None = None,
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
        clock: Callable = utc_now,
    ):
        self.store = store
        self.api_url = api_url
        self.frontend_base_url = frontend_base_url
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })
        if access_token:
            self.session.headers["Authorization"] = f"Bearer {access_token}"

    def _build_message(
        self, device_token: str, notification: Notification, locale: str
    ) -> dict[str, Any]:
        urgent = notification.type == NotificationType.BREAKING_NEWS or (
            notification.priority in (NotificationPriority.HIGH, NotificationPriority.URGENT)
        )
        return {
            "to": device_token,
            "title": notification.localized_title(locale),
            "body": notification.localized_message(locale)[:MAX_BODY_LENGTH],
            "priority": "high" if urgent else "default",
            "sound": "default",
            "ttl": 24 * 60 * 60,
            "data": {
                **notification.data,
                "notificationId": notification.id,
                "type": notification.type.value,
                "url": notification_url(self.frontend_base_url, notification, locale),
            },
        }

    def send(self, user: UserProfile, notification: Notification) -> SendResult:
        subscriptions = self.store.get_push_subscriptions(user.id)
        if not subscriptions:
            return SendResult.failed(f"No push subscriptions registered for user {user.id}")

        messages = [
            self._build_message(sub.device_token, notification, user.preferred_locale)
            for sub in subscriptions
        ]

        try:
            response = self.session.post(
                self.api_url, json=messages, timeout=self.timeout_seconds
            )
            response.raise_for_status()
            body = response.json()
        except requests.Timeout as e:
            return SendResult.failed(f"Push provider timed out: {e}", retryable=True)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            retryable = status is None or status == 429 or status >= 500
            return SendResult.failed(f"Push provider rejected request: {e}", retryable=retryable)
        except (requests.RequestException, ValueError) as e:
            return SendResult.failed(f"Push provider unavailable: {e}", retryable=True)

        tickets = body.get("data") if isinstance(body, dict) else None
        if not isinstance(tickets, list) or not tickets:
            return SendResult.failed("Invalid push provider response", retryable=True)

        return self._evaluate_tickets(subscriptions, tickets)

    def _evaluate_tickets(
        self, subscriptions: list[PushSubscription], tickets: list[dict[str, Any]]
    ) -> SendResult:
        accepted: list[str] = []
        errors: list[str] = []
        retryable = False

        for subscription, ticket in zip(subscriptions, tickets):
            if ticket.get("status") == "ok":
                accepted.append(ticket.get("id") or subscription.id)
                self._cleanup(self.store.touch_push_subscription, subscription.id, self.clock())
                continue

            error_type = (ticket.get("details") or {}).get("error")
            errors.append(f"{error_type or 'error'}: {ticket.get('message', 'Unknown error')}")
            if error_type == "DeviceNotRegistered":
                self._cleanup(self.store.delete_push_subscription, subscription.id)
            if error_type not in PERMANENT_DEVICE_ERRORS:
                retryable = True

        if accepted:
            return SendResult.sent(provider_message_id=accepted[0])
        return SendResult.failed("; ".join(errors), retryable=retryable)

    def _cleanup(self, operation: Callable, *args: Any) -> None:
        # Subscription bookkeeping never changes the delivery outcome
        try:
            operation(*args)
        except Exception as e:
            report_notification_error(
                error_type="delivery",
                error_message=str(e),
                context={"operation": getattr(operation, "__name__", repr(operation)), "args": args},
                summary="Could not update push subscription",
            )
