"""Shared domain models for Wallaplus."""
from .chat import (
    SYSTEM_SENDER_ID,
    Message,
    MessageType,
    Thread,
    ThreadSummary,
)
from .marketplace import (
    CITY,
    Category,
    Listing,
    ListingStatus,
    Neighborhood,
    Review,
    User,
)

__all__ = [
    "SYSTEM_SENDER_ID",
    "Message",
    "MessageType",
    "Thread",
    "ThreadSummary",
    "CITY",
    "Category",
    "Listing",
    "ListingStatus",
    "Neighborhood",
    "Review",
    "User",
]
