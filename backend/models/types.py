"""Shared type definitions for type checking.

Uses NewType for IDs to provide compile-time type safety - prevents mixing
different ID types (e.g., passing UserID where NotificationID expected).

Uses TypeAlias for complex types that are purely structural.
"""

from typing import NewType, TypeAlias

# ID types using NewType for type safety
# These create distinct types that mypy can differentiate
UserID = NewType("UserID", str)
NotificationID = NewType("NotificationID", str)
DeliveryID = NewType("DeliveryID", str)
DigestID = NewType("DigestID", str)
ArticleID = NewType("ArticleID", str)
NewsID = NewType("NewsID", str)

# Structural aliases using TypeAlias
# These are for complex types where structural compatibility is desired
LocaleCode: TypeAlias = str  # e.g. "en", "es"
LocalizedText: TypeAlias = dict[LocaleCode, str]
ClockTime: TypeAlias = str  # HH:MM, 24h
