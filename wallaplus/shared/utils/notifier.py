"""Change notification for in-process stores.

Stores own one ChangeNotifier each and call notify() after every mutation,
so views can re-query. There is no module-level listener registry.
"""
import logging
import threading
from typing import Callable, List

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ChangeNotifier:
    """Publish/subscribe hub with no payload: listeners just re-read state."""

    def __init__(self, name: str = "store"):
        self.name = name
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            Callable that removes the listener again. Calling it twice is harmless.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def notify(self) -> None:
        """Call every listener; a failing listener does not stop the rest."""
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener()
            except Exception as e:
                logger.error(
                    "CHANGE_LISTENER_FAILED",
                    extra={
                        "notifier": self.name,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
