"""
Composition root of the notification engine.

NotificationService owns every component and worker pool. Build one per
process (from_settings) and close it on shutdown; nothing is created at
import time.
"""

from typing import Any

from models import (
    BulkDeliveryReport,
    Channel,
    DeliveryReport,
    DigestType,
    NotificationRequest,
    PushSubscription,
)
from notifications.channel_sender import ChannelDispatcher, ChannelSender, InAppSender
from notifications.delivery import DeliveryOrchestrator
from notifications.digest_builder import DigestBuilder
from notifications.email_sender import EmailSender
from notifications.pending_queue import PendingQueueProcessor
from notifications.preferences import PreferenceResolver
from notifications.push_sender import PushSender
from notifications.retry import RetryPolicy
from notifications.store import NotificationStore
from notifications.unsubscribe import UnsubscribeOutcome, UnsubscribeService
from notifications.unsubscribe_tokens import UnsubscribeTokenService
from shared.config import NotifierSettings, load_settings
from shared.db import get_supabase_client
from shared.utils import utc_now


class NotificationService:
    """Entry points used by producers, the scheduler and the unsubscribe page."""

    def __init__(
        self,
        store: Any,
        senders: list[ChannelSender],
        digest_sender: Any,
        tokens: UnsubscribeTokenService,
        settings: NotifierSettings | None = None,
    ):
        settings = settings or NotifierSettings()
        self.settings = settings
        self.store = store
        self.tokens = tokens

        self.resolver = PreferenceResolver(
            store, cache_seconds=settings.preference_cache_seconds
        )
        self.retry_policy = RetryPolicy(
            max_attempts=settings.pending_max_attempts,
            base_delay_seconds=settings.pending_base_delay_seconds,
            max_delay_seconds=settings.pending_max_delay_seconds,
        )
        self.dispatcher = ChannelDispatcher(
            senders,
            max_workers=settings.channel_workers,
            timeout_seconds=settings.channel_timeout_seconds,
        )
        self.orchestrator = DeliveryOrchestrator(
            store,
            self.resolver,
            self.dispatcher,
            self.retry_policy,
            max_recipient_workers=settings.max_recipient_workers,
        )
        self.pending = PendingQueueProcessor(
            store, self.resolver, self.dispatcher, self.retry_policy
        )
        self.digests = DigestBuilder(
            store,
            self.resolver,
            digest_sender,
            items_per_section=settings.digest_items_per_section,
            digest_timezone=settings.digest_timezone,
            max_workers=settings.max_recipient_workers,
        )
        self.unsubscribe = UnsubscribeService(tokens, self.resolver)

    @classmethod
    def from_settings(
        cls, settings: NotifierSettings | None = None, supabase: Any = None
    ) -> "NotificationService":
        """Wire the Supabase store and the real channel providers."""
        settings = settings or load_settings()
        if supabase is None:
            supabase = get_supabase_client(
                settings.supabase_url, settings.supabase_service_key
            )
        store = NotificationStore(supabase)
        tokens = UnsubscribeTokenService(max_age_days=settings.unsubscribe_max_age_days)
        email = EmailSender(
            api_key=settings.resend_api_key,
            from_email=settings.from_email,
            frontend_base_url=settings.frontend_base_url,
            tokens=tokens,
            timeout_seconds=settings.channel_timeout_seconds,
        )
        push = PushSender(
            store,
            api_url=settings.push_api_url,
            frontend_base_url=settings.frontend_base_url,
            access_token=settings.expo_access_token,
            timeout_seconds=settings.channel_timeout_seconds,
        )
        return cls(
            store,
            senders=[InAppSender(), email, push],
            digest_sender=email,
            tokens=tokens,
            settings=settings,
        )

    def create_notification(self, request: NotificationRequest) -> DeliveryReport:
        return self.orchestrator.deliver(request)

    def create_notifications_bulk(
        self, requests: list[NotificationRequest]
    ) -> BulkDeliveryReport:
        return self.orchestrator.deliver_bulk(requests)

    def run_pending_retry_sweep(self, channel: Channel, limit: int = 100) -> int:
        return self.pending.process_pending(channel, limit)

    def run_daily_digest_sweep(self) -> dict[str, int]:
        return self.digests.run_digest_sweep(DigestType.DAILY)

    def run_weekly_digest_sweep(self) -> dict[str, int]:
        return self.digests.run_digest_sweep(DigestType.WEEKLY)

    def process_unsubscribe(self, token: str | None) -> UnsubscribeOutcome:
        return self.unsubscribe.process(token)

    def register_push_device(
        self, user_id: str, device_token: str, user_agent: str | None = None
    ) -> PushSubscription:
        """Register (or refresh) a device for push; re-registering is idempotent."""
        return self.store.register_push_subscription(
            user_id, device_token, user_agent, utc_now()
        )

    def remove_push_device(self, user_id: str, device_token: str) -> None:
        self.store.remove_push_subscription(user_id, device_token)

    def close(self) -> None:
        self.dispatcher.close()

    def __enter__(self) -> "NotificationService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
