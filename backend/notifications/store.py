"""
Supabase persistence for notifications, delivery status rows, preferences
and digests.

Tables:
- profiles: recipients (id, email, full_name, preferred_locale)
- notification_preferences: one row per user, absent means defaults
- notifications: one row per notification
- notification_deliveries: one row per (notification_id, channel), unique
- notification_digests: unique on (user_id, digest_type, scheduled_for)
- user_push_subscriptions: registered devices, unique on (user_id, device_token)
- articles / news_articles: content catalog read by the digest builder
"""

from datetime import datetime
from typing import Any, cast

from pydantic import ValidationError

from models import (
    Channel,
    DeliveryState,
    DeliveryStatusRecord,
    DigestArticle,
    DigestContent,
    DigestFrequency,
    DigestNewsItem,
    DigestStatus,
    DigestType,
    Notification,
    NotificationDigest,
    NotificationRequest,
    PushSubscription,
    UserProfile,
)
from notifications.error_logger import report_notification_error
from shared.utils import to_iso

PROFILE_COLUMNS = "id, email, full_name, preferred_locale"


def _is_duplicate_error(error: Exception) -> bool:
    error_str = str(error).lower()
    return "duplicate" in error_str or "unique" in error_str or "23505" in error_str


def _as_mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def notification_from_row(row: dict[str, Any]) -> Notification:
    """Map a `notifications` row to a Notification."""
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        title=_as_mapping(row.get("title")),
        message=_as_mapping(row.get("message")),
        data=_as_mapping(row.get("data")),
        priority=row.get("priority") or "normal",
        is_read=bool(row.get("is_read")),
        read_at=row.get("read_at"),
        created_at=row["created_at"],
    )


def digest_from_row(row: dict[str, Any]) -> NotificationDigest:
    return NotificationDigest.model_validate(row)


class NotificationStore:
    """Thin query layer over a Supabase client.

    Every method issues its own request; no method spans more than one row
    group, so no cross-row transaction is needed.
    """

    def __init__(self, supabase: Any):
        self.supabase = supabase

    # Recipients

    def get_user_profile(self, user_id: str) -> UserProfile | None:
        response = (
            self.supabase.table("profiles")
            .select(PROFILE_COLUMNS)
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return UserProfile.model_validate(response.data[0])

    def get_user_profiles(self, user_ids: list[str]) -> dict[str, UserProfile]:
        if not user_ids:
            return {}
        response = (
            self.supabase.table("profiles")
            .select(PROFILE_COLUMNS)
            .in_("id", user_ids)
            .execute()
        )
        profiles = {}
        for row in response.data or []:
            try:
                profile = UserProfile.model_validate(row)
            except ValidationError as e:
                # One unreadable profile must not sink a whole sweep
                report_notification_error(
                    error_type="recipient",
                    error_message=str(e),
                    context={"row": row},
                    summary=f"Skipping unreadable profile {row.get('id')}",
                )
                continue
            profiles[profile.id] = profile
        return profiles

    # Preferences

    def get_preferences(self, user_id: str) -> dict[str, Any] | None:
        response = (
            self.supabase.table("notification_preferences")
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return cast(dict[str, Any], response.data[0])

    def upsert_preferences(self, row: dict[str, Any]) -> None:
        self.supabase.table("notification_preferences").upsert(
            row, on_conflict="user_id"
        ).execute()

    def delete_preferences(self, user_id: str) -> None:
        self.supabase.table("notification_preferences").delete().eq(
            "user_id", user_id
        ).execute()

    def list_user_ids_by_frequency(self, frequency: DigestFrequency) -> list[str]:
        response = (
            self.supabase.table("notification_preferences")
            .select("user_id")
            .eq("digest_frequency", frequency.value)
            .execute()
        )
        return [row["user_id"] for row in response.data or []]

    # Notifications

    def create_notifications(
        self, requests: list[NotificationRequest]
    ) -> list[Notification]:
        """Insert notifications in one request, preserving input order."""
        if not requests:
            return []
        rows = [
            request.model_dump(mode="json", include={
                "user_id", "type", "title", "message", "data", "priority"
            })
            for request in requests
        ]
        response = self.supabase.table("notifications").insert(rows).execute()
        return [notification_from_row(row) for row in response.data or []]

    def create_notification(self, request: NotificationRequest) -> Notification:
        created = self.create_notifications([request])
        if not created:
            raise RuntimeError("Notification insert returned no row")
        return created[0]

    def get_notification(self, notification_id: str) -> Notification | None:
        response = (
            self.supabase.table("notifications")
            .select("*")
            .eq("id", notification_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return notification_from_row(response.data[0])

    # Delivery status

    def insert_delivery_statuses(
        self, records: list[DeliveryStatusRecord]
    ) -> list[DeliveryStatusRecord]:
        if not records:
            return []
        rows = [
            record.model_dump(mode="json", exclude={"id", "created_at"})
            for record in records
        ]
        response = self.supabase.table("notification_deliveries").insert(rows).execute()
        return [DeliveryStatusRecord.model_validate(row) for row in response.data or []]

    def update_delivery_status(self, record_id: str, changes: dict[str, Any]) -> bool:
        """Update a still-pending row; returns False if it was already resolved."""
        payload = {
            key: to_iso(value) if isinstance(value, datetime) else value
            for key, value in changes.items()
        }
        if isinstance(payload.get("status"), DeliveryState):
            payload["status"] = payload["status"].value
        response = (
            self.supabase.table("notification_deliveries")
            .update(payload)
            .eq("id", record_id)
            .eq("status", DeliveryState.PENDING.value)
            .execute()
        )
        return bool(response.data)

    def get_pending_deliveries(
        self, channel: Channel, limit: int, now: datetime
    ) -> list[tuple[DeliveryStatusRecord, Notification]]:
        """Pending rows for `channel` that are due, oldest first."""
        response = (
            self.supabase.table("notification_deliveries")
            .select("*, notification:notifications(*)")
            .eq("channel", channel.value)
            .eq("status", DeliveryState.PENDING.value)
            .or_(f"next_attempt_at.is.null,next_attempt_at.lte.{now.isoformat()}")
            .order("created_at", desc=False)
            .limit(limit)
            .execute()
        )
        pending = []
        for row in response.data or []:
            notification_row = row.get("notification")
            if not notification_row:
                self._fail_unreadable_delivery(row, "Notification no longer exists", now)
                continue
            try:
                pending.append(
                    (
                        DeliveryStatusRecord.model_validate(row),
                        notification_from_row(notification_row),
                    )
                )
            except (ValidationError, KeyError) as e:
                self._fail_unreadable_delivery(
                    row, f"Unreadable delivery row: {type(e).__name__}: {e}", now
                )
        return pending

    def _fail_unreadable_delivery(
        self, row: dict[str, Any], reason: str, now: datetime
    ) -> None:
        # Left pending, a bad row would be selected first by every sweep
        report_notification_error(
            error_type="retry",
            error_message=reason,
            context={"delivery_id": row.get("id"), "row": row},
            summary=f"Failing unreadable delivery {row.get('id')}",
        )
        if row.get("id"):
            self.update_delivery_status(row["id"], {
                "status": DeliveryState.FAILED,
                "last_attempt_at": now,
                "next_attempt_at": None,
                "failure_reason": reason,
            })

    def claim_delivery(
        self,
        record_id: str,
        seen_next_attempt_at: datetime | None,
        lease_until: datetime,
    ) -> bool:
        """
        Lease a pending row for one attempt.

        Compare-and-set on `next_attempt_at`: the claim only succeeds if the
        row is still pending and nobody moved it since it was read, so two
        sweeps never send the same row.
        """
        query = (
            self.supabase.table("notification_deliveries")
            .update({"next_attempt_at": lease_until.isoformat()})
            .eq("id", record_id)
            .eq("status", DeliveryState.PENDING.value)
        )
        if seen_next_attempt_at is None:
            query = query.is_("next_attempt_at", "null")
        else:
            query = query.eq("next_attempt_at", seen_next_attempt_at.isoformat())
        return bool(query.execute().data)

    # Push devices

    def get_push_subscriptions(self, user_id: str) -> list[PushSubscription]:
        response = (
            self.supabase.table("user_push_subscriptions")
            .select("id, user_id, device_token, user_agent, last_used")
            .eq("user_id", user_id)
            .order("last_used", desc=True)
            .execute()
        )
        return [PushSubscription.model_validate(row) for row in response.data or []]

    def register_push_subscription(
        self,
        user_id: str,
        device_token: str,
        user_agent: str | None,
        when: datetime,
    ) -> PushSubscription:
        """Add a device, or refresh it if the user already registered it."""
        response = (
            self.supabase.table("user_push_subscriptions")
            .upsert(
                {
                    "user_id": user_id,
                    "device_token": device_token,
                    "user_agent": user_agent,
                    "last_used": when.isoformat(),
                },
                on_conflict="user_id,device_token",
            )
            .execute()
        )
        return PushSubscription.model_validate(response.data[0])

    def remove_push_subscription(self, user_id: str, device_token: str) -> None:
        self.supabase.table("user_push_subscriptions").delete().eq(
            "user_id", user_id
        ).eq("device_token", device_token).execute()

    def touch_push_subscription(self, subscription_id: str, when: datetime) -> None:
        self.supabase.table("user_push_subscriptions").update(
            {"last_used": when.isoformat()}
        ).eq("id", subscription_id).execute()

    def delete_push_subscription(self, subscription_id: str) -> None:
        self.supabase.table("user_push_subscriptions").delete().eq(
            "id", subscription_id
        ).execute()

    # Content catalog

    def get_recent_articles(self, since: datetime, limit: int) -> list[DigestArticle]:
        response = (
            self.supabase.table("articles")
            .select("id, title, meta_description, category, published_at")
            .eq("status", "published")
            .gte("published_at", since.isoformat())
            .order("published_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [
            DigestArticle(
                id=row["id"],
                title=row["title"],
                summary=row.get("meta_description"),
                category=row.get("category"),
                published_at=row["published_at"],
            )
            for row in response.data or []
        ]

    def get_recent_news(self, since: datetime, limit: int) -> list[DigestNewsItem]:
        response = (
            self.supabase.table("news_articles")
            .select("id, title, summary, source_name, published_at, trending_score")
            .gte("published_at", since.isoformat())
            .order("trending_score", desc=True)
            .limit(limit)
            .execute()
        )
        return [DigestNewsItem.model_validate(row) for row in response.data or []]

    # Digests

    def find_digest(
        self, user_id: str, digest_type: DigestType, scheduled_for: datetime
    ) -> NotificationDigest | None:
        response = (
            self.supabase.table("notification_digests")
            .select("*")
            .eq("user_id", user_id)
            .eq("digest_type", digest_type.value)
            .eq("scheduled_for", scheduled_for.isoformat())
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return digest_from_row(response.data[0])

    def insert_digest(
        self,
        user_id: str,
        digest_type: DigestType,
        content: DigestContent,
        scheduled_for: datetime,
    ) -> NotificationDigest:
        """Insert a pending digest, or return the one that already exists.

        The unique constraint on (user_id, digest_type, scheduled_for) decides
        races between concurrent sweeps.
        """
        row = {
            "user_id": user_id,
            "digest_type": digest_type.value,
            "content": content.model_dump(mode="json"),
            "scheduled_for": scheduled_for.isoformat(),
            "status": DigestStatus.PENDING.value,
        }
        try:
            response = self.supabase.table("notification_digests").insert(row).execute()
        except Exception as e:
            if not _is_duplicate_error(e):
                raise
            existing = self.find_digest(user_id, digest_type, scheduled_for)
            if existing is None:
                raise
            return existing
        return digest_from_row(response.data[0])

    def update_digest(
        self,
        digest_id: str,
        status: DigestStatus,
        sent_at: datetime | None = None,
    ) -> None:
        changes: dict[str, Any] = {"status": status.value}
        if sent_at is not None:
            changes["sent_at"] = sent_at.isoformat()
        self.supabase.table("notification_digests").update(changes).eq(
            "id", digest_id
        ).execute()
