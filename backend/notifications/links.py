"""URLs embedded in emails and push payloads."""

from urllib.parse import quote

from models import Notification, NotificationType


def notification_url(base_url: str, notification: Notification, locale: str = "en") -> str:
    """Deep link for a notification, by type."""
    base_url = base_url.rstrip("/")
    data = notification.data

    # Stored rows may predate the payload schemas; no id means the inbox
    if notification.type == NotificationType.NEW_ARTICLE and data.get("article_id"):
        return f"{base_url}/{locale}/articles/{data['article_id']}"
    if (
        notification.type in (NotificationType.NEW_NEWS, NotificationType.BREAKING_NEWS)
        and data.get("news_id")
    ):
        return f"{base_url}/{locale}/news/{data['news_id']}"
    if notification.type == NotificationType.ARTICLE_APPROVED:
        return f"{base_url}/{locale}/profile/articles"
    if notification.type == NotificationType.PROPOSAL_REVIEWED:
        return f"{base_url}/{locale}/profile/proposals"
    return f"{base_url}/{locale}/notifications"


def unsubscribe_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/unsubscribe?token={quote(token)}"


def preferences_url(base_url: str, locale: str = "en") -> str:
    return f"{base_url.rstrip('/')}/{locale}/settings/notifications"
