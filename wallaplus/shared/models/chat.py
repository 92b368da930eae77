"""Chat domain models: messages, threads and thread summaries.

A thread is an ordered conversation between a buyer and a seller about one
listing. Insertion order is display order; messages are never reordered.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


# Sentinel author of every synthetic warning. Never a real user id.
SYSTEM_SENDER_ID = "system"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class MessageType(Enum):
    """Kind of chat message."""
    TEXT = "text"
    SYSTEM_WARNING = "system-warning"


@dataclass(frozen=True)
class Message:
    """A single chat message.

    risk_flag is the persisted result of the final safety scan, the only
    trace a scan leaves behind.
    """
    thread_id: str
    sender_id: str
    content: str
    type: MessageType = MessageType.TEXT
    risk_flag: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.type == MessageType.SYSTEM_WARNING and self.sender_id != SYSTEM_SENDER_ID:
            raise ValueError("system-warning messages must be sent by the system sender")
        if self.type == MessageType.TEXT and self.sender_id == SYSTEM_SENDER_ID:
            raise ValueError(f"'{SYSTEM_SENDER_ID}' cannot author a text message")

    @property
    def is_system_warning(self) -> bool:
        return self.type == MessageType.SYSTEM_WARNING

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "thread_id": self.thread_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "type": self.type.value,
            "risk_flag": self.risk_flag,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Thread:
    """Conversation between the buyer and the seller of one listing."""
    listing_id: str
    buyer_id: str
    seller_id: str
    id: str = field(default_factory=new_id)
    last_message_preview: Optional[str] = None
    last_message_at: Optional[datetime] = None
    has_safety_warning: bool = False
    created_at: datetime = field(default_factory=utcnow)

    def participants(self) -> Tuple[str, str]:
        return (self.buyer_id, self.seller_id)

    def counterpart_of(self, user_id: str) -> str:
        """Return the other participant.

        Raises:
            ValueError: If user_id is not a participant
        """
        if user_id == self.buyer_id:
            return self.seller_id
        if user_id == self.seller_id:
            return self.buyer_id
        raise ValueError("user is not a participant of this thread")

    @property
    def activity_at(self) -> datetime:
        return self.last_message_at or self.created_at

    def summary_for(self, user_id: str) -> "ThreadSummary":
        return ThreadSummary(
            thread_id=self.id,
            listing_id=self.listing_id,
            counterpart_id=self.counterpart_of(user_id),
            last_message_preview=self.last_message_preview,
            last_message_at=self.last_message_at,
            has_safety_warning=self.has_safety_warning,
        )


@dataclass(frozen=True)
class ThreadSummary:
    """Thread list entry as seen by one participant."""
    thread_id: str
    listing_id: str
    counterpart_id: str
    last_message_preview: Optional[str] = None
    last_message_at: Optional[datetime] = None
    has_safety_warning: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "listing_id": self.listing_id,
            "counterpart_id": self.counterpart_id,
            "last_message_preview": self.last_message_preview,
            "last_message_at": self.last_message_at.isoformat() if self.last_message_at else None,
            "has_safety_warning": self.has_safety_warning,
        }
