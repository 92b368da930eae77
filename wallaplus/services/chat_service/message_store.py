"""Message store and thread directory contracts, plus the in-memory backend.

ThreadGuard only talks to these interfaces, so the same safety logic runs
over whichever backend is wired in (in-memory for local runs and tests,
PostgreSQL in production).
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Sequence

from wallaplus.shared.database import NotFoundError
from wallaplus.shared.models import Message, MessageType, Thread, ThreadSummary
from wallaplus.shared.utils import ChangeNotifier, hash_pii

logger = logging.getLogger(__name__)


def make_preview(content: str, length: int) -> str:
    """Single-line preview of a message for the thread list."""
    flat = " ".join(content.split())
    if len(flat) <= length:
        return flat
    return flat[: max(length - 1, 0)].rstrip() + "…"


class MessageStore(ABC):
    """Ordered per-thread message persistence."""

    @abstractmethod
    def append(self, thread_id: str, message: Message) -> str:
        """Persist one message at the end of the thread.

        Returns:
            The stored message id

        Raises:
            NotFoundError: Unknown thread
            RepositoryError: Storage failure
        """
        pass

    @abstractmethod
    def append_all(self, thread_id: str, messages: Sequence[Message]) -> List[str]:
        """Persist messages contiguously and in order, all or nothing.

        No other message may land between them.
        """
        pass

    @abstractmethod
    def list(self, thread_id: str) -> List[Message]:
        """Messages of a thread, ascending by creation order."""
        pass

    @abstractmethod
    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe callable."""
        pass


class ThreadDirectory(ABC):
    """Thread lookup used to render thread lists."""

    @abstractmethod
    def create_thread(self, listing_id: str, buyer_id: str, seller_id: str) -> Thread:
        """Return the buyer's thread for this listing, creating it if needed."""
        pass

    @abstractmethod
    def get_thread(self, thread_id: str) -> Optional[Thread]:
        pass

    @abstractmethod
    def list_threads_for_user(self, user_id: str) -> List[ThreadSummary]:
        """Threads the user takes part in, most recent activity first."""
        pass


class InMemoryChatStore(MessageStore, ThreadDirectory):
    """Process-local store that owns its threads and messages.

    Construct one per process and pass it to consumers by reference.
    """

    def __init__(self, preview_length: int = 80):
        self.preview_length = preview_length
        self._threads: Dict[str, Thread] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._lock = threading.RLock()
        self._notifier = ChangeNotifier("chat")

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self._notifier.subscribe(listener)

    def create_thread(self, listing_id: str, buyer_id: str, seller_id: str) -> Thread:
        if buyer_id == seller_id:
            raise ValueError("buyer and seller must be different users")
        buyer_id_hash = hash_pii(buyer_id)

        with self._lock:
            for thread in self._threads.values():
                if (thread.listing_id, thread.buyer_id, thread.seller_id) == (listing_id, buyer_id, seller_id):
                    return thread

            thread = Thread(listing_id=listing_id, buyer_id=buyer_id, seller_id=seller_id)
            self._threads[thread.id] = thread
            self._messages[thread.id] = []

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
        with self._lock:
            return self._threads.get(thread_id)

    def list_threads_for_user(self, user_id: str) -> List[ThreadSummary]:
        with self._lock:
            threads = [t for t in self._threads.values() if user_id in t.participants()]
            threads.sort(key=lambda t: t.activity_at, reverse=True)
            return [t.summary_for(user_id) for t in threads]

    def append(self, thread_id: str, message: Message) -> str:
        return self.append_all(thread_id, [message])[0]

    def append_all(self, thread_id: str, messages: Sequence[Message]) -> List[str]:
        with self._lock:
            thread = self._threads.get(thread_id)
            if thread is None:
                raise NotFoundError(f"thread {thread_id} not found")

            for message in messages:
                if message.thread_id != thread_id:
                    raise ValueError("message belongs to a different thread")

            self._messages[thread_id].extend(messages)
            self._touch(thread, messages)

        self._notifier.notify()
        return [m.id for m in messages]

    def list(self, thread_id: str) -> List[Message]:
        with self._lock:
            if thread_id not in self._messages:
                raise NotFoundError(f"thread {thread_id} not found")
            return list(self._messages[thread_id])

    def _touch(self, thread: Thread, messages: Sequence[Message]) -> None:
        """Refresh the thread's preview fields after an append."""
        for message in messages:
            if message.type == MessageType.TEXT:
                thread.last_message_preview = make_preview(message.content, self.preview_length)
            thread.last_message_at = message.created_at
            if message.risk_flag or message.is_system_warning:
                thread.has_safety_warning = True
