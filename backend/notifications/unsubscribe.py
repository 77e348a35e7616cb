"""
Processing of one-click unsubscribe links.

The only user-facing error path of the engine: every failure ends in an
UnsubscribeOutcome with a readable message, never an exception.
"""

from pydantic import BaseModel

from models import NotificationType
from notifications.error_logger import report_notification_error
from notifications.preferences import PreferenceResolver
from notifications.unsubscribe_tokens import (
    SCOPE_ALL,
    SCOPE_DIGEST,
    UnsubscribeTokenService,
)

INVALID_LINK_MESSAGE = "This unsubscribe link is invalid or expired."
UPDATE_FAILED_MESSAGE = (
    "We could not update your preferences right now. Please try again later."
)


class UnsubscribeOutcome(BaseModel):
    success: bool
    message: str
    user_id: str | None = None
    notification_type: str | None = None


def _describe(scope: str) -> str:
    if scope == SCOPE_DIGEST:
        return "digest emails and all other email notifications"
    if scope == SCOPE_ALL:
        return "all email notifications"
    return f"{scope.replace('_', ' ')} notifications"


class UnsubscribeService:
    """Applies verified unsubscribe tokens to the user's preferences.

    - "all" and "digest" turn email off entirely
    - a notification type mutes email for that type only
    """

    def __init__(self, tokens: UnsubscribeTokenService, resolver: PreferenceResolver):
        self.tokens = tokens
        self.resolver = resolver

    def process(self, token: str | None) -> UnsubscribeOutcome:
        claim = self.tokens.verify(token)
        if claim is None:
            return UnsubscribeOutcome(success=False, message=INVALID_LINK_MESSAGE)

        user_id = claim.user_id
        scope = claim.notification_type
        try:
            if scope in (SCOPE_ALL, SCOPE_DIGEST):
                self.resolver.update(user_id, email_enabled=False)
            else:
                self.resolver.mute_email_type(user_id, NotificationType(scope))
        except Exception as e:
            report_notification_error(
                error_type="unsubscribe",
                error_message=f"{type(e).__name__}: {e}",
                context={"user_id": user_id, "notification_type": scope},
                summary=f"Could not unsubscribe user {user_id} from {scope}",
            )
            return UnsubscribeOutcome(
                success=False,
                message=UPDATE_FAILED_MESSAGE,
                user_id=user_id,
                notification_type=scope,
            )

        return UnsubscribeOutcome(
            success=True,
            message=f"You have been unsubscribed from {_describe(scope)}.",
            user_id=user_id,
            notification_type=scope,
        )

