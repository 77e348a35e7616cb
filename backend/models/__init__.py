"""Pydantic models for data validation and type checking."""

from models.digest import (
    DigestArticle,
    DigestContent,
    DigestNewsItem,
    DigestStatus,
    DigestType,
    NotificationDigest,
)
from models.notification import (
    BulkDeliveryReport,
    Channel,
    DeliveryReport,
    DeliveryState,
    DeliveryStatusRecord,
    DigestFrequency,
    Notification,
    NotificationPreferences,
    NotificationPriority,
    NotificationRequest,
    NotificationType,
    SendResult,
)
from models.user import PushSubscription, UserProfile

__all__ = [
    "BulkDeliveryReport",
    "Channel",
    "DeliveryReport",
    "DeliveryState",
    "DeliveryStatusRecord",
    "DigestArticle",
    "DigestContent",
    "DigestFrequency",
    "DigestNewsItem",
    "DigestStatus",
    "DigestType",
    "Notification",
    "NotificationDigest",
    "NotificationPreferences",
    "NotificationPriority",
    "NotificationRequest",
    "NotificationType",
    "PushSubscription",
    "SendResult",
    "UserProfile",
]
