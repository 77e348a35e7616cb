"""
Notification engine for Stakeados.

This module handles:
- Creating notifications and fanning them out to in-app, email and push
- Batching bulk deliveries per recipient
- Retrying pending channel deliveries
- Building and sending daily / weekly digest emails
- Processing one-click unsubscribe links
"""

from .service import NotificationService
from .unsubscribe import UnsubscribeOutcome

__all__ = [
    'NotificationService',
    'UnsubscribeOutcome',
]
