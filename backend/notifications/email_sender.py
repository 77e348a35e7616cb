"""
Email sending via Resend API for the notification system.

Handles single notification emails (the email channel) and digest emails.
Every email carries a signed one-click unsubscribe link, in the body and in
the List-Unsubscribe header.
"""

import re
from html import escape
from typing import Any

import resend

from models import (
    Channel,
    DigestType,
    Notification,
    NotificationDigest,
    NotificationType,
    SendResult,
    UserProfile,
)
from notifications.channel_sender import ChannelSender
from notifications.links import notification_url, preferences_url, unsubscribe_url
from notifications.unsubscribe_tokens import SCOPE_DIGEST, UnsubscribeTokenService

SUBJECT_PREFIXES: dict[NotificationType, dict[str, str]] = {
    NotificationType.NEW_ARTICLE: {"en": "New Article", "es": "Nuevo Artículo"},
    NotificationType.NEW_NEWS: {"en": "News", "es": "Noticia"},
    NotificationType.BREAKING_NEWS: {"en": "Breaking News", "es": "Noticia Importante"},
    NotificationType.ARTICLE_APPROVED: {
        "en": "Article Approved",
        "es": "Artículo Aprobado",
    },
    NotificationType.PROPOSAL_REVIEWED: {
        "en": "Proposal Reviewed",
        "es": "Propuesta Revisada",
    },
}

DIGEST_SUBJECTS: dict[DigestType, dict[str, str]] = {
    DigestType.DAILY: {"en": "Your Daily Digest", "es": "Tu Resumen Diario"},
    DigestType.WEEKLY: {"en": "Your Weekly Digest", "es": "Tu Resumen Semanal"},
}

# Shape check only; the provider does full address validation
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Provider status codes that will not get better by retrying
NON_RETRYABLE_STATUS = {400, 401, 403, 404, 422}


def _localized(options: dict[str, str], locale: str) -> str:
    return options.get(locale) or options["en"]


def _status_code(error: Exception) -> int | None:
    for attr in ("code", "status_code"):
        value = getattr(error, attr, None)
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return None


class EmailSender(ChannelSender):
    """Email channel backed by Resend."""

    channel = Channel.EMAIL

    def __init__(
        self,
        api_key: str | None,
        from_email: str,
        frontend_base_url: str,
        tokens: UnsubscribeTokenService,
        from_name: str = "Stakeados",
        timeout_seconds: float = 10.0,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.frontend_base_url = frontend_base_url
        self.tokens = tokens
        if api_key:
            resend.api_key = api_key
        # Bounds every Resend call so a hung request releases its worker
        resend.default_http_client = resend.RequestsClient(timeout=timeout_seconds)

    def send(self, user: UserProfile, notification: Notification) -> SendResult:
        """Send one notification email."""
        locale = user.preferred_locale
        title = notification.localized_title(locale)
        subject = f"{_localized(SUBJECT_PREFIXES[notification.type], locale)}: {title}"
        unsub = unsubscribe_url(
            self.frontend_base_url,
            self.tokens.issue(user.id, notification.type.value),
        )
        prepared = {
            "title": title,
            "message": notification.localized_message(locale),
            "url": notification_url(self.frontend_base_url, notification, locale),
            "unsubscribe_url": unsub,
            "preferences_url": preferences_url(self.frontend_base_url, locale),
        }
        return self._deliver(
            user,
            subject,
            _build_notification_html(prepared),
            _build_notification_text(prepared),
            unsub,
            tags=[{"name": "notification_type", "value": notification.type.value}],
        )

    def send_digest(self, user: UserProfile, digest: NotificationDigest) -> SendResult:
        """Send a digest email."""
        locale = user.preferred_locale
        subject = (
            f"{_localized(DIGEST_SUBJECTS[digest.digest_type], locale)} "
            f"({digest.content.total_count} items)"
        )
        unsub = unsubscribe_url(
            self.frontend_base_url, self.tokens.issue(user.id, SCOPE_DIGEST)
        )
        prepared = _prepare_digest_data(digest, self.frontend_base_url, locale)
        prepared["unsubscribe_url"] = unsub
        prepared["preferences_url"] = preferences_url(self.frontend_base_url, locale)
        return self._deliver(
            user,
            subject,
            _build_digest_html(prepared),
            _build_digest_text(prepared),
            unsub,
            tags=[{"name": "digest_type", "value": digest.digest_type.value}],
        )

    def _deliver(
        self,
        user: UserProfile,
        subject: str,
        html_body: str,
        text_body: str,
        unsub_url: str,
        tags: list[dict[str, str]],
    ) -> SendResult:
        if not self.api_key:
            return SendResult.failed("Email provider not configured (RESEND_API_KEY)")
        if not user.email:
            return SendResult.failed(f"User {user.id} has no email address")
        if not EMAIL_PATTERN.match(user.email):
            return SendResult.failed(f"Invalid email address for user {user.id}")

        try:
            response = resend.Emails.send({
                "from": f"{self.from_name} <{self.from_email}>",
                "to": user.email,
                "subject": subject,
                "html": html_body,
                "text": text_body,
                "headers": {
                    "List-Unsubscribe": f"<{unsub_url}>",
                    "List-Unsubscribe-Post": "List-Unsubscribe=One-Click",
                },
                "tags": tags,
            })
        except Exception as e:
            status = _status_code(e)
            retryable = status not in NON_RETRYABLE_STATUS
            return SendResult.failed(f"Resend error: {e}", retryable=retryable)

        return SendResult.sent(provider_message_id=response.get("id"))


def _prepare_digest_data(
    digest: NotificationDigest, base_url: str, locale: str
) -> dict[str, Any]:
    """
    Extract and format everything the digest templates display.

    This does ALL data processing once so formatters only handle presentation.
    """
    base_url = base_url.rstrip("/")
    articles = [
        {
            "title": article.title,
            "summary": article.summary or "",
            "meta": article.category or "",
            "date_formatted": article.published_at.strftime("%B %d, %Y"),
            "url": f"{base_url}/{locale}/articles/{article.id}",
        }
        for article in digest.content.articles
    ]
    news = [
        {
            "title": item.title,
            "summary": item.summary or "",
            "meta": item.source_name or "",
            "date_formatted": item.published_at.strftime("%B %d, %Y"),
            "url": f"{base_url}/{locale}/news/{item.id}",
        }
        for item in digest.content.news
    ]
    return {
        "heading": _localized(DIGEST_SUBJECTS[digest.digest_type], locale),
        "articles": articles,
        "news": news,
        "total_count": digest.content.total_count,
        "platform_url": f"{base_url}/{locale}",
    }


def _build_notification_html(prepared: dict[str, Any]) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2>{escape(prepared['title'])}</h2>
    <p>{escape(prepared['message'])}</p>
    <a href="{prepared['url']}">Open in Stakeados →</a>
    <hr>
    <p style="color: #666; font-size: 12px;">
        <a href="{prepared['unsubscribe_url']}">Unsubscribe</a> |
        <a href="{prepared['preferences_url']}">Manage preferences</a>
    </p>
</body>
</html>
"""


def _build_notification_text(prepared: dict[str, Any]) -> str:
    return (
        f"{prepared['title']}\n\n"
        f"{prepared['message']}\n\n"
        f"Open: {prepared['url']}\n\n"
        "---\n"
        f"Unsubscribe: {prepared['unsubscribe_url']}\n"
        f"Manage preferences: {prepared['preferences_url']}\n"
    )


def _build_digest_section_html(heading: str, items: list[dict[str, Any]]) -> str:
    if not items:
        return ""
    html = f"\n    <h3>{escape(heading)}</h3>\n"
    for item in items:
        html += f"""
    <div style="border-left: 4px solid #e5e7eb; padding: 10px 15px; margin-bottom: 15px;">
        <a href="{item['url']}"><strong>{escape(item['title'])}</strong></a>
        <div style="color: #6b7280; font-size: 13px;">{escape(item['meta'])} • {item['date_formatted']}</div>
"""
        if item["summary"]:
            html += f"        <p>{escape(item['summary'])}</p>\n"
        html += "    </div>\n"
    return html


def _build_digest_html(prepared: dict[str, Any]) -> str:
    """Build HTML email body for a digest."""
    html = f"""
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2>{escape(prepared['heading'])}</h2>
    <p>{prepared['total_count']} new items since your last digest.</p>
"""
    html += _build_digest_section_html("Articles", prepared["articles"])
    html += _build_digest_section_html("News", prepared["news"])
    html += f"""
    <p><a href="{prepared['platform_url']}">Visit Stakeados</a></p>
    <hr>
    <p style="color: #666; font-size: 12px;">
        You received this digest because you subscribed to digest emails.
        <a href="{prepared['unsubscribe_url']}">Unsubscribe</a> |
        <a href="{prepared['preferences_url']}">Manage preferences</a>
    </p>
</body>
</html>
"""
    return html


def _build_digest_text(prepared: dict[str, Any]) -> str:
    """Build plain text email body for a digest."""
    text = f"{prepared['heading'].upper()}\n\n"
    text += f"{prepared['total_count']} new items since your last digest.\n\n"

    for heading, items in (("ARTICLES", prepared["articles"]), ("NEWS", prepared["news"])):
        if not items:
            continue
        text += f"{heading}\n\n"
        for i, item in enumerate(items, 1):
            text += f"{i}. {item['title']}\n"
            if item["meta"]:
                text += f"{item['meta']} - {item['date_formatted']}\n"
            if item["summary"]:
                text += f"\n{item['summary']}\n"
            text += f"\nRead more: {item['url']}\n\n"
            text += "-" * 60 + "\n\n"

    text += f"""
Visit Stakeados: {prepared['platform_url']}
Unsubscribe: {prepared['unsubscribe_url']}
Manage your notification preferences: {prepared['preferences_url']}
"""
    return text
