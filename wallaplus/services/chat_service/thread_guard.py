"""ThreadGuard: the safety-aware send path of a chat thread.

Sits between the compose box, the SafetyScanner and the message store:

- Every keystroke runs the live scan and toggles the composing banner.
  There is no hysteresis: the banner goes away on the first keystroke
  that no longer matches.
- Every send runs the final scan. The result is stored as the message's
  risk flag, and a risky message is followed immediately by a synthetic
  system-warning message in the same thread.
- Risk never blocks a send. The guard nudges; it does not enforce.

The compose text is cleared only after the store confirms the send, so a
failed send never loses what the user typed.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from wallaplus.services.safety_service import SYSTEM_WARNING_TEXT, SafetyScanner, get_scanner
from wallaplus.shared.database import NotFoundError, RepositoryError
from wallaplus.shared.models import SYSTEM_SENDER_ID, Message, MessageType
from wallaplus.shared.utils import hash_pii, hash_text_for_audit
from .config import ChatConfig
from .errors import PersistenceFailure, Unauthenticated, ValidationError
from .identity import IdentityProvider
from .message_store import MessageStore

logger = logging.getLogger(__name__)


class ComposeState(Enum):
    IDLE = "idle"           # no banner
    WARNING = "warning"     # live scan matched, banner shown


@dataclass(frozen=True)
class SendOutcome:
    """Messages appended by one send: the user's, plus a warning if risky."""
    message: Message
    warning: Optional[Message] = None

    @property
    def risk_flag(self) -> bool:
        return self.message.risk_flag

    @property
    def messages(self) -> Tuple[Message, ...]:
        if self.warning is None:
            return (self.message,)
        return (self.message, self.warning)

    def to_dict(self) -> dict:
        return {
            "risk_flag": self.risk_flag,
            "messages": [m.to_dict() for m in self.messages],
        }


class ThreadGuard:
    """Wraps a message store's send path with the safety scans.

    One guard serves every thread; per-compose-box state lives in the
    ComposeSession objects it hands out.
    """

    def __init__(
        self,
        store: MessageStore,
        identity: IdentityProvider,
        scanner: Optional[SafetyScanner] = None,
        config: Optional[ChatConfig] = None,
    ):
        """Initialize the guard.

        Args:
            store: Message persistence backend
            identity: Source of the currently signed-in user
            scanner: Safety scanner (defaults to the shared one)
            config: Send behaviour configuration
        """
        self.store = store
        self.identity = identity
        self.scanner = scanner or get_scanner()
        self.config = config or ChatConfig()
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="chat-send")

        logger.info(
            "THREAD_GUARD_INITIALIZED",
            extra={
                "store": type(store).__name__,
                "send_timeout_seconds": self.config.send_timeout_seconds,
                "scanner_version": self.scanner.pattern_version,
            }
        )

    def open_session(self, thread_id: str) -> "ComposeSession":
        return ComposeSession(self, thread_id)

    def scan_live(self, text: str) -> bool:
        return self.scanner.scan_live(text)

    def scan_final(self, text: str) -> bool:
        return self.scanner.scan_final(text)

    def send_message(self, thread_id: str, text: str) -> SendOutcome:
        """Send a message, annotating it with a warning if it looks risky.

        Args:
            thread_id: Target thread
            text: Message text, stored as typed

        Returns:
            SendOutcome with one message, or two if a warning was injected

        Raises:
            ValidationError: Text is empty, whitespace-only or too long
            Unauthenticated: Nobody is signed in
            NotFoundError: Thread does not exist
            PersistenceFailure: Store failed or did not answer in time
        """
        if not text or not text.strip():
            raise ValidationError("Message text is empty")
        if len(text) > self.config.max_message_length:
            raise ValidationError(
                f"Message text exceeds {self.config.max_message_length} characters"
            )

        identity = self.identity.current()
        if identity is None or identity.subject == SYSTEM_SENDER_ID:
            logger.warning("CHAT_SEND_UNAUTHENTICATED", extra={"thread_id": thread_id})
            raise Unauthenticated("Sign in to send messages")
        sender_id_hash = hash_pii(identity.subject)

        risk_flag = self.scanner.scan_final(text)
        message = Message(
            thread_id=thread_id,
            sender_id=identity.subject,
            content=text,
            type=MessageType.TEXT,
            risk_flag=risk_flag,
        )
        warning = None
        if risk_flag:
            warning = Message(
                thread_id=thread_id,
                sender_id=SYSTEM_SENDER_ID,
                content=SYSTEM_WARNING_TEXT,
                type=MessageType.SYSTEM_WARNING,
            )
        outcome = SendOutcome(message=message, warning=warning)

        self._persist(thread_id, outcome)

        logger.info(
            "CHAT_MESSAGE_SENT",
            extra={
                "thread_id": thread_id,
                "message_id": message.id,
                "sender_id_hash": sender_id_hash,
                "text_hash": hash_text_for_audit(text),
                "text_length": len(text),
                "risk_flag": risk_flag,
            }
        )
        if warning is not None:
            logger.warning(
                "CHAT_RISK_WARNING_INJECTED",
                extra={
                    "thread_id": thread_id,
                    "message_id": message.id,
                    "warning_id": warning.id,
                    "scanner_version": self.scanner.pattern_version,
                }
            )

        return outcome

    def _persist(self, thread_id: str, outcome: SendOutcome) -> None:
        """Append the outcome's messages in one store call, bounded by the timeout.

        A timed-out call is reported as failed and never retried: sends are
        not idempotent. If the call is still queued it is cancelled, so the
        user's manual retry cannot produce a duplicate. A call that already
        reached the store may still complete.
        """
        future = self._executor.submit(self.store.append_all, thread_id, list(outcome.messages))
        try:
            future.result(timeout=self.config.send_timeout_seconds)
        except FutureTimeoutError as e:
            dropped = future.cancel()
            logger.error(
                "CHAT_SEND_TIMEOUT",
                extra={
                    "thread_id": thread_id,
                    "message_id": outcome.message.id,
                    "timeout_seconds": self.config.send_timeout_seconds,
                    "dropped": dropped,
                }
            )
            raise PersistenceFailure("Message store did not confirm the send in time", e) from e
        except NotFoundError:
            raise
        except RepositoryError as e:
            logger.error(
                "CHAT_SEND_FAILED",
                extra={
                    "thread_id": thread_id,
                    "message_id": outcome.message.id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            raise PersistenceFailure("Message could not be saved", e) from e

    def close(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)


class ComposeSession:
    """State of one compose box: text, banner, and the single in-flight send.

    Idle <-> Warning is re-decided on every keystroke. Sending clears the
    box and returns to Idle, but only once the store confirmed the send.
    """

    def __init__(self, guard: ThreadGuard, thread_id: str):
        self.guard = guard
        self.thread_id = thread_id
        self._text = ""
        self._state = ComposeState.IDLE
        self._send_lock = threading.Lock()

    @property
    def text(self) -> str:
        return self._text

    @property
    def state(self) -> ComposeState:
        return self._state

    @property
    def banner_visible(self) -> bool:
        return self._state == ComposeState.WARNING

    @property
    def sending(self) -> bool:
        return self._send_lock.locked()

    def on_input(self, text: str) -> bool:
        """Record the compose box contents after a keystroke.

        Returns:
            Whether the warning banner should be visible
        """
        self._text = text
        self._state = ComposeState.WARNING if self.guard.scan_live(text) else ComposeState.IDLE
        return self.banner_visible

    def send(self) -> Optional[SendOutcome]:
        """Send the composed text.

        Returns:
            SendOutcome on success; None when there was nothing to send or
            another send from this box is still outstanding

        Raises:
            ValidationError, Unauthenticated, PersistenceFailure, NotFoundError:
            propagated from the guard with text and banner left untouched
        """
        if not self._send_lock.acquire(blocking=False):
            logger.debug("CHAT_SEND_IGNORED_IN_FLIGHT", extra={"thread_id": self.thread_id})
            return None

        try:
            sent_text = self._text
            if not sent_text.strip():
                return None

            outcome = self.guard.send_message(self.thread_id, sent_text)

            # Keystrokes typed while the send was outstanding stay in the box
            if self._text == sent_text:
                self._text = ""
                self._state = ComposeState.IDLE
            return outcome
        finally:
            self._send_lock.release()
