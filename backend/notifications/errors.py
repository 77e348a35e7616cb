"""Exceptions raised by the notification engine."""

from typing import Any


class NotificationError(Exception):
    """Base class for notification engine errors."""


class DeliveryError(NotificationError):
    """A single notification could not be delivered at all."""


class RecipientNotFound(DeliveryError):
    """The recipient does not exist in the user store."""

    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class BulkDeliveryError(NotificationError):
    """Every recipient of a bulk delivery failed."""

    def __init__(self, failures: dict[str, str]):
        super().__init__(f"Bulk delivery failed for all {len(failures)} recipient(s)")
        self.failures = failures


class ChannelError(NotificationError):
    """A channel sender could not complete a delivery attempt.

    Args:
        message: Error message
        retryable: Whether a later attempt may succeed
        provider_response: Raw provider response, if any
    """

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        provider_response: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.retryable = retryable
        self.provider_response = provider_response


class ChannelUnavailable(ChannelError):
    """Provider unreachable, misconfigured or rejecting requests."""


class ChannelTimeout(ChannelError):
    """Provider did not answer within the channel timeout."""

    def __init__(self, message: str):
        super().__init__(message, retryable=True)


class InvalidPreferenceState(NotificationError):
    """A stored preference row could not be interpreted."""
