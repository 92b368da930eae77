"""Chat Service: buyer/seller threads with a safety-aware send path.

Components:
- thread_guard.py: ThreadGuard and ComposeSession (live banner, final scan,
  system-warning injection)
- message_store.py: MessageStore / ThreadDirectory contracts and the
  in-memory backend
- postgres_store.py: PostgreSQL backend
- identity.py: Current-user lookup
- errors.py: ValidationError, Unauthenticated, PersistenceFailure
- handler.py: Flask HTTP endpoints

Usage:
    store = InMemoryChatStore()
    guard = ThreadGuard(store, StaticIdentityProvider("u1"))
    session = guard.open_session(thread.id)
    session.on_input("llámame al 666 11 22 33")   # True: banner shown
    outcome = session.send()                       # text + system-warning
"""

from .config import ChatConfig
from .errors import ChatError, PersistenceFailure, Unauthenticated, ValidationError
from .identity import (
    Identity,
    IdentityProvider,
    RequestHeaderIdentityProvider,
    StaticIdentityProvider,
)
from .message_store import InMemoryChatStore, MessageStore, ThreadDirectory
from .thread_guard import ComposeSession, ComposeState, SendOutcome, ThreadGuard

__all__ = [
    "ChatConfig",
    "ChatError",
    "PersistenceFailure",
    "Unauthenticated",
    "ValidationError",
    "Identity",
    "IdentityProvider",
    "RequestHeaderIdentityProvider",
    "StaticIdentityProvider",
    "InMemoryChatStore",
    "MessageStore",
    "ThreadDirectory",
    "ComposeSession",
    "ComposeState",
    "SendOutcome",
    "ThreadGuard",
]
