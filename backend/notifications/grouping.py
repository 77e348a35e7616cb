"""Partitioning of notification requests by recipient."""

from models import NotificationRequest


def group_requests_by_recipient(
    requests: list[NotificationRequest],
) -> dict[str, list[NotificationRequest]]:
    """
    Group requests by user_id.

    Recipients appear in order of their first request, and each recipient's
    requests keep their original relative order.

    Args:
        requests: Notification requests, possibly for many users

    Returns:
        Dictionary mapping user_id to that user's requests
    """
    requests_by_user: dict[str, list[NotificationRequest]] = {}
    for request in requests:
        if request.user_id not in requests_by_user:
            requests_by_user[request.user_id] = []
        requests_by_user[request.user_id].append(request)
    return requests_by_user
