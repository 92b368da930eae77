"""PostgreSQL-backed message store and thread directory.

Messages carry a BIGSERIAL ``seq`` column; thread order is ``seq`` order.
append_all locks the thread row first, so a risky message and its
system-warning get consecutive positions even with both participants
writing at once.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from wallaplus.shared.database import BaseRepository, ConnectionManager, NotFoundError
from wallaplus.shared.models import Message, MessageType, Thread, ThreadSummary
from wallaplus.shared.utils import ChangeNotifier, hash_pii
from .message_store import MessageStore, ThreadDirectory, make_preview

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS chat_threads (
    id TEXT PRIMARY KEY,
    listing_id TEXT NOT NULL,
    buyer_id TEXT NOT NULL,
    seller_id TEXT NOT NULL,
    last_message_preview TEXT,
    last_message_at TIMESTAMPTZ,
    has_safety_warning BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL,
    UNIQUE (listing_id, buyer_id, seller_id)
);
CREATE INDEX IF NOT EXISTS chat_threads_buyer_idx ON chat_threads (buyer_id);
CREATE INDEX IF NOT EXISTS chat_threads_seller_idx ON chat_threads (seller_id);

CREATE TABLE IF NOT EXISTS chat_messages (
    seq BIGSERIAL PRIMARY KEY,
    id TEXT NOT NULL UNIQUE,
    thread_id TEXT NOT NULL REFERENCES chat_threads (id),
    sender_id TEXT NOT NULL,
    content TEXT NOT NULL,
    type TEXT NOT NULL,
    risk_flag BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS chat_messages_thread_idx ON chat_messages (thread_id, seq);
"""


class ThreadRepository(BaseRepository[Thread]):
    """Rows of chat_threads."""

    columns = (
        "id",
        "listing_id",
        "buyer_id",
        "seller_id",
        "last_message_preview",
        "last_message_at",
        "has_safety_warning",
        "created_at",
    )

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "chat_threads")

    def _row_to_entity(self, row: tuple) -> Thread:
        return Thread(
            id=row[0],
            listing_id=row[1],
            buyer_id=row[2],
            seller_id=row[3],
            last_message_preview=row[4],
            last_message_at=row[5],
            has_safety_warning=row[6],
            created_at=row[7],
        )

    def _entity_to_params(self, entity: Thread) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "listing_id": entity.listing_id,
            "buyer_id": entity.buyer_id,
            "seller_id": entity.seller_id,
            "last_message_preview": entity.last_message_preview,
            "last_message_at": entity.last_message_at,
            "has_safety_warning": entity.has_safety_warning,
            "created_at": entity.created_at,
        }

    def find_for_user(self, user_id: str) -> List[Thread]:
        with self.transaction() as cur:
            cur.execute(
                f"""
                SELECT {self.select_list} FROM {self.table_name}
                WHERE buyer_id = %s OR seller_id = %s
                ORDER BY COALESCE(last_message_at, created_at) DESC
                """,
                (user_id, user_id)
            )
            rows = cur.fetchall()
        return [self._row_to_entity(row) for row in rows]

    def find_existing(self, listing_id: str, buyer_id: str, seller_id: str) -> Optional[Thread]:
        with self.transaction() as cur:
            cur.execute(
                f"""
                SELECT {self.select_list} FROM {self.table_name}
                WHERE listing_id = %s AND buyer_id = %s AND seller_id = %s
                """,
                (listing_id, buyer_id, seller_id)
            )
            row = cur.fetchone()
        return self._row_to_entity(row) if row else None


class MessageRepository(BaseRepository[Message]):
    """Rows of chat_messages, excluding the internal seq column."""

    columns = ("id", "thread_id", "sender_id", "content", "type", "risk_flag", "created_at")

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "chat_messages")

    def _row_to_entity(self, row: tuple) -> Message:
        return Message(
            id=row[0],
            thread_id=row[1],
            sender_id=row[2],
            content=row[3],
            type=MessageType(row[4]),
            risk_flag=row[5],
            created_at=row[6],
        )

    def _entity_to_params(self, entity: Message) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "thread_id": entity.thread_id,
            "sender_id": entity.sender_id,
            "content": entity.content,
            "type": entity.type.value,
            "risk_flag": entity.risk_flag,
            "created_at": entity.created_at,
        }


class PostgresChatStore(MessageStore, ThreadDirectory):
    """Durable chat store over one shared connection pool."""

    def __init__(self, connection_manager: ConnectionManager, preview_length: int = 80):
        self.connection_manager = connection_manager
        self.preview_length = preview_length
        self.threads = ThreadRepository(connection_manager)
        self.messages = MessageRepository(connection_manager)
        self._notifier = ChangeNotifier("chat-postgres")

    def ensure_schema(self) -> None:
        """Create tables and indexes if missing."""
        with self.threads.transaction() as cur:
            cur.execute(SCHEMA_SQL)
        logger.info("CHAT_SCHEMA_READY")

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self._notifier.subscribe(listener)

    def create_thread(self, listing_id: str, buyer_id: str, seller_id: str) -> Thread:
        if buyer_id == seller_id:
            raise ValueError("buyer and seller must be different users")
        buyer_id_hash = hash_pii(buyer_id)

        existing = self.threads.find_existing(listing_id, buyer_id, seller_id)
        if existing is not None:
            return existing

        thread = self.threads.insert(
            Thread(listing_id=listing_id, buyer_id=buyer_id, seller_id=seller_id)
        )
        logger.info(
            "THREAD_CREATED",
            extra={
                "thread_id": thread.id,
                "listing_id": listing_id,
                "buyer_id_hash": buyer_id_hash,
            }
        )
        self._notifier.notify()
        return thread

    def get_thread(self, thread_id: str) -> Optional[Thread]:
        return self.threads.find_by_id(thread_id)

    def list_threads_for_user(self, user_id: str) -> List[ThreadSummary]:
        return [t.summary_for(user_id) for t in self.threads.find_for_user(user_id)]

    def append(self, thread_id: str, message: Message) -> str:
        return self.append_all(thread_id, [message])[0]

    def append_all(self, thread_id: str, messages: Sequence[Message]) -> List[str]:
        for message in messages:
            if message.thread_id != thread_id:
                raise ValueError("message belongs to a different thread")

        preview = None
        for message in messages:
            if message.type == MessageType.TEXT:
                preview = make_preview(message.content, self.preview_length)
        flagged = any(m.risk_flag or m.is_system_warning for m in messages)
        last_at = messages[-1].created_at if messages else None

        with self.messages.transaction() as cur:
            cur.execute(
                "SELECT id FROM chat_threads WHERE id = %s FOR UPDATE",
                (thread_id,)
            )
            if cur.fetchone() is None:
                raise NotFoundError(f"thread {thread_id} not found")

            for message in messages:
                self.messages.insert(message, cur=cur)

            cur.execute(
                """
                UPDATE chat_threads SET
                    last_message_preview = COALESCE(%s, last_message_preview),
                    last_message_at = COALESCE(%s, last_message_at),
                    has_safety_warning = has_safety_warning OR %s
                WHERE id = %s
                """,
                (preview, last_at, flagged, thread_id)
            )

        self._notifier.notify()
        return [m.id for m in messages]

    def list(self, thread_id: str) -> List[Message]:
        if self.threads.find_by_id(thread_id) is None:
            raise NotFoundError(f"thread {thread_id} not found")
        return self.messages.find_where("thread_id", thread_id, order_by="seq ASC")
