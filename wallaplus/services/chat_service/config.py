"""Chat service configuration."""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ChatConfig:
    """Configuration for message sending."""

    # A send not confirmed within this window surfaces as PersistenceFailure
    send_timeout_seconds: float = 10.0

    # "memory" or "postgres"
    backend: str = "memory"

    # Characters of the last message kept as the thread preview
    preview_length: int = 80

    # Longer texts are rejected before scanning
    max_message_length: int = 2000

    def __post_init__(self):
        if self.send_timeout_seconds <= 0:
            raise ValueError(f"send_timeout_seconds must be positive, got {self.send_timeout_seconds}")
        if self.backend not in ("memory", "postgres"):
            raise ValueError(f"Unknown chat backend: {self.backend}")
        if self.max_message_length < 1:
            raise ValueError(f"max_message_length must be positive, got {self.max_message_length}")

    @classmethod
    def from_env(cls) -> "ChatConfig":
        """Create config from environment variables.

        Environment variables:
            CHAT_SEND_TIMEOUT_SECONDS: Send timeout (default 10)
            CHAT_BACKEND: memory | postgres (default memory)
            CHAT_PREVIEW_LENGTH: Thread preview length (default 80)
            CHAT_MAX_MESSAGE_LENGTH: Longest accepted message (default 2000)
        """
        return cls(
            send_timeout_seconds=float(os.getenv("CHAT_SEND_TIMEOUT_SECONDS", "10")),
            backend=os.getenv("CHAT_BACKEND", "memory").lower(),
            preview_length=int(os.getenv("CHAT_PREVIEW_LENGTH", "80")),
            max_message_length=int(os.getenv("CHAT_MAX_MESSAGE_LENGTH", "2000")),
        )
