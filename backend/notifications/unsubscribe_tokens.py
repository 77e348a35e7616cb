"""
Token generation and validation for one-click unsubscribe functionality.

Uses cryptographically signed tokens with expiry for secure unsubscribe links.
Tokens are stateless (no database storage needed): the payload binds a user
to the notification type they unsubscribe from, and the issue time is part of
the signed token. Tokens expire after 90 days by default.
"""

import hashlib
import os

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from pydantic import BaseModel

from models import NotificationType

UNSUBSCRIBE_SALT = "unsubscribe"

# Unsubscribe scopes beyond single notification types
SCOPE_ALL = "all"
SCOPE_DIGEST = "digest"
UNSUBSCRIBE_SCOPES = {SCOPE_ALL, SCOPE_DIGEST} | {t.value for t in NotificationType}


class UnsubscribeClaim(BaseModel):
    """What a valid token proves."""

    user_id: str
    notification_type: str


def _get_serializer(secret_key: str | None = None) -> URLSafeTimedSerializer:
    """
    Get configured serializer for token generation and validation.

    Args:
        secret_key: Signing key; defaults to UNSUBSCRIBE_SECRET_KEY

    Returns:
        URLSafeTimedSerializer instance

    Raises:
        ValueError: If no key given and UNSUBSCRIBE_SECRET_KEY not set
    """
    secret_key = secret_key or os.getenv("UNSUBSCRIBE_SECRET_KEY")
    if not secret_key:
        raise ValueError("UNSUBSCRIBE_SECRET_KEY environment variable must be set.")

    return URLSafeTimedSerializer(
        secret_key,
        salt=UNSUBSCRIBE_SALT,
        signer_kwargs={"digest_method": hashlib.sha256},
    )


def generate_unsubscribe_token(
    user_id: str, notification_type: str, secret_key: str | None = None
) -> str:
    """
    Generate a signed unsubscribe token for a user and notification type.

    Args:
        user_id: User's unique identifier (UUID)
        notification_type: A NotificationType value, "digest" or "all"
        secret_key: Signing key; defaults to UNSUBSCRIBE_SECRET_KEY

    Returns:
        URL-safe token string (format: payload.timestamp.signature)

    Raises:
        ValueError: If the key is not configured or the type is unknown
    """
    if not user_id:
        raise ValueError("user_id is required")
    if notification_type not in UNSUBSCRIBE_SCOPES:
        raise ValueError(f"Unknown unsubscribe type: {notification_type}")

    serializer = _get_serializer(secret_key)
    return serializer.dumps({"u": user_id, "t": notification_type})


def validate_unsubscribe_token(
    token: str | None, max_age_days: int = 90, secret_key: str | None = None
) -> UnsubscribeClaim | None:
    """
    Validate an unsubscribe token and extract the user and notification type.

    Verifies the token's signature and checks it hasn't expired.
    Never raises exceptions - returns None for any invalid token.

    Args:
        token: Token string from URL parameter
        max_age_days: Maximum token age in days (default: 90)
        secret_key: Signing key; defaults to UNSUBSCRIBE_SECRET_KEY

    Returns:
        UnsubscribeClaim if token is valid, None if invalid or expired

    Examples:
        >>> token = generate_unsubscribe_token("user-123", "new_article")
        >>> validate_unsubscribe_token(token).user_id
        'user-123'

        >>> print(validate_unsubscribe_token("invalid-token"))
        None
    """
    if not token or not isinstance(token, str):
        return None
    try:
        serializer = _get_serializer(secret_key)
        max_age_seconds = max_age_days * 24 * 60 * 60
        payload = serializer.loads(
            token, max_age=max_age_seconds, salt=UNSUBSCRIBE_SALT
        )
    except (BadSignature, SignatureExpired, ValueError, TypeError):
        # Invalid signature, expired, malformed token or missing key
        return None

    if not isinstance(payload, dict):
        return None
    user_id = payload.get("u")
    notification_type = payload.get("t")
    if not isinstance(user_id, str) or not user_id:
        return None
    if notification_type not in UNSUBSCRIBE_SCOPES:
        return None
    return UnsubscribeClaim(user_id=user_id, notification_type=notification_type)


class UnsubscribeTokenService:
    """Issues and verifies tokens with one configured key and validity window."""

    def __init__(self, secret_key: str | None = None, max_age_days: int = 90):
        self.secret_key = secret_key
        self.max_age_days = max_age_days

    def issue(self, user_id: str, notification_type: str) -> str:
        return generate_unsubscribe_token(
            user_id, notification_type, secret_key=self.secret_key
        )

    def verify(self, token: str | None) -> UnsubscribeClaim | None:
        return validate_unsubscribe_token(
            token, max_age_days=self.max_age_days, secret_key=self.secret_key
        )
