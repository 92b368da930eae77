"""Chat service error kinds.

ValidationError is swallowed by the compose session; the other two reach
the UI, which redirects to sign-in on Unauthenticated and offers a manual
retry on PersistenceFailure.
"""
from typing import Optional


class ChatError(Exception):
    """Base exception for chat send errors."""
    pass


class ValidationError(ChatError):
    """Message rejected before sending (empty or whitespace-only)."""
    pass


class Unauthenticated(ChatError):
    """No active identity when attempting to send."""
    pass


class PersistenceFailure(ChatError):
    """The message store did not confirm the send.

    The compose text is kept so the user can retry by hand.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
