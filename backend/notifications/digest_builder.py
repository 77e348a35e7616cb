"""
Digest building and the daily / weekly digest sweeps.

A digest bundles the newest published articles and the top trending news of
a time window into one email. Content is global; whether a user gets a
digest at all depends on their own preferences. No digest is stored for an
empty window, and a digest already sent for a cycle is never sent again.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from zoneinfo import ZoneInfo

from models import (
    DigestContent,
    DigestFrequency,
    DigestStatus,
    DigestType,
    NotificationDigest,
    SendResult,
    UserProfile,
)
from notifications.error_logger import report_notification_error
from notifications.preferences import PreferenceResolver
from shared.utils import utc_now

DIGEST_WINDOWS = {
    DigestType.DAILY: timedelta(days=1),
    DigestType.WEEKLY: timedelta(days=7),
}


def cycle_start(digest_type: DigestType, now: datetime, tz_name: str = "UTC") -> datetime:
    """
    Start of the scheduling cycle containing `now`, in UTC.

    Daily cycles start at local midnight, weekly cycles at Monday midnight,
    both in `tz_name`.
    """
    local = now.astimezone(ZoneInfo(tz_name))
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    if digest_type == DigestType.WEEKLY:
        start -= timedelta(days=start.weekday())
    return start.astimezone(timezone.utc)


class DigestBuilder:
    def __init__(
        self,
        store: Any,
        resolver: PreferenceResolver,
        email_sender: Any,
        items_per_section: int = 5,
        digest_timezone: str = "UTC",
        max_workers: int = 8,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.resolver = resolver
        self.email_sender = email_sender
        self.items_per_section = items_per_section
        self.digest_timezone = digest_timezone
        self.max_workers = max_workers
        self.clock = clock

    def collect_content(self, window_start: datetime) -> DigestContent:
        """Newest articles and top trending news published since `window_start`."""
        articles = self.store.get_recent_articles(window_start, self.items_per_section)
        news = self.store.get_recent_news(window_start, self.items_per_section)
        return DigestContent.from_items(articles, news)

    def build_digest(
        self,
        user_id: str,
        window_start: datetime,
        digest_type: DigestType = DigestType.DAILY,
        now: datetime | None = None,
    ) -> NotificationDigest | None:
        """
        Create (or reuse) the user's digest for the current cycle.

        Args:
            user_id: Recipient
            window_start: Earliest publish time of eligible content
            digest_type: Daily or weekly
            now: Time of the build, defaults to the clock

        Returns:
            The pending (or previously stored) digest, or None if there is
            no eligible content
        """
        content = self.collect_content(window_start)
        return self._build_from_content(user_id, digest_type, content, now or self.clock())

    def _build_from_content(
        self,
        user_id: str,
        digest_type: DigestType,
        content: DigestContent,
        now: datetime,
    ) -> NotificationDigest | None:
        scheduled_for = cycle_start(digest_type, now, self.digest_timezone)
        existing = self.store.find_digest(user_id, digest_type, scheduled_for)
        if existing is not None:
            return existing
        if content.total_count == 0:
            return None
        return self.store.insert_digest(user_id, digest_type, content, scheduled_for)

    def send_digest(
        self, digest: NotificationDigest, user: UserProfile
    ) -> NotificationDigest:
        """
        Email a digest and record the outcome.

        Returns:
            The digest with its new status (`sent` with sent_at, or `failed`)
        """
        if digest.status == DigestStatus.SENT:
            return digest

        try:
            result = self.email_sender.send_digest(user, digest)
        except Exception as e:
            result = SendResult.failed(f"{type(e).__name__}: {e}")

        if result.success:
            sent_at = self.clock()
            self.store.update_digest(digest.id, DigestStatus.SENT, sent_at=sent_at)
            return digest.model_copy(update={"status": DigestStatus.SENT, "sent_at": sent_at})

        self.store.update_digest(digest.id, DigestStatus.FAILED)
        report_notification_error(
            error_type="digest",
            error_message=result.error or "Unknown error",
            context={
                "digest_id": digest.id,
                "user_id": digest.user_id,
                "digest_type": digest.digest_type.value,
                "item_count": digest.content.total_count,
            },
            summary=f"Failed to send {digest.digest_type.value} digest to user {digest.user_id}",
        )
        return digest.model_copy(update={"status": DigestStatus.FAILED})

    def run_digest_sweep(
        self, digest_type: DigestType, now: datetime | None = None
    ) -> dict[str, int]:
        """
        Build and send digests for every user on `digest_type` frequency.

        Users are handled in parallel; one user's failure never blocks
        another's digest.

        Returns:
            Dictionary with stats: sent, failed, skipped
        """
        now = now or self.clock()
        stats = {"sent": 0, "failed": 0, "skipped": 0}

        user_ids = self.store.list_user_ids_by_frequency(DigestFrequency(digest_type.value))
        if not user_ids:
            print(f"No users subscribed to {digest_type.value} digests.")
            return stats

        content = self.collect_content(now - DIGEST_WINDOWS[digest_type])
        print(
            f"Found {len(user_ids)} {digest_type.value} digest users, "
            f"{content.total_count} eligible items"
        )

        profiles = self.store.get_user_profiles(user_ids)
        workers = min(self.max_workers, len(user_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="digest") as pool:
            futures = {
                pool.submit(
                    self._digest_for_user, user_id, profiles.get(user_id),
                    digest_type, content, now,
                ): user_id
                for user_id in user_ids
            }
            for future in as_completed(futures):
                user_id = futures[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    outcome = "failed"
                    report_notification_error(
                        error_type="digest",
                        error_message=f"{type(e).__name__}: {e}",
                        context={"user_id": user_id, "digest_type": digest_type.value},
                        summary=f"Digest for user {user_id} failed",
                    )
                stats[outcome] += 1

        return stats

    def _digest_for_user(
        self,
        user_id: str,
        user: UserProfile | None,
        digest_type: DigestType,
        content: DigestContent,
        now: datetime,
    ) -> str:
        if user is None:
            print(f"  ⚠️  User profile {user_id} not found, skipping")
            return "skipped"

        preferences = self.resolver.resolve(user_id)
        if not preferences.email_enabled or preferences.digest_frequency.value != digest_type.value:
            return "skipped"

        digest = self._build_from_content(user_id, digest_type, content, now)
        if digest is None or digest.status == DigestStatus.SENT:
            return "skipped"

        sent = self.send_digest(digest, user)
        if sent.status == DigestStatus.SENT:
            print(f"  ✓ Sent {digest_type.value} digest to user {user_id}")
            return "sent"
        print(f"  ✗ Failed to send {digest_type.value} digest to user {user_id}")
        return "failed"
