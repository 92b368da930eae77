"""Chat safety scanner: spots attempts to move a deal off-platform.

Two passes with different goals:
- Live scan runs on every keystroke and favours recall. Any 9-digit run or
  an "@" lights the composing banner, even if it turns out harmless.
- Final scan runs once when a message is sent and favours precision. Its
  result is persisted as the message's risk flag and may inject a
  system-warning into the thread, so it uses stricter phone and email
  patterns.

Both passes are pure and total: any string, including "", is classified and
nothing is raised or remembered between calls.
"""
import logging
import re
from enum import Enum
from typing import FrozenSet, Optional

from .config import SafetyConfig

logger = logging.getLogger(__name__)


class RiskSignal(Enum):
    """Rule that fired for a piece of text. Ephemeral, never persisted."""
    DIGIT_RUN = "digit_run"     # live: contiguous digit run
    AT_SIGN = "at_sign"         # live: any "@"
    PHONE = "phone"             # final: regional mobile number
    EMAIL = "email"             # final: local@domain.tld


NO_SIGNALS: FrozenSet[RiskSignal] = frozenset()


class SafetyScanner:
    """Deterministic contact-exchange detector.

    Patterns are compiled once at construction; scans only run them.
    """

    def __init__(self, config: Optional[SafetyConfig] = None):
        self.config = config or SafetyConfig()

        self._digit_run = re.compile(rf"[0-9]{{{self.config.live_digit_run_length}}}")
        self._phone = re.compile(self.config.phone_pattern, re.IGNORECASE)
        self._email = re.compile(self.config.email_pattern, re.IGNORECASE)

        logger.info(
            "SAFETY_SCANNER_INITIALIZED",
            extra={
                "pattern_version": self.config.pattern_version,
                "region": self.config.region,
                "live_digit_run_length": self.config.live_digit_run_length,
            }
        )

    @property
    def pattern_version(self) -> str:
        return self.config.pattern_version

    def scan_live(self, text: str) -> bool:
        """Per-keystroke check driving the composing banner.

        Args:
            text: Current contents of the compose box, unnormalized

        Returns:
            True if the text holds a digit run or an "@"
        """
        return "@" in text or self._digit_run.search(text) is not None

    def scan_final(self, text: str) -> bool:
        """At-send check whose result becomes the message's risk flag.

        Args:
            text: Message text as it will be stored

        Returns:
            True if a phone number or an email appears anywhere in the text
        """
        return self._phone.search(text) is not None or self._email.search(text) is not None

    def live_signals(self, text: str) -> FrozenSet[RiskSignal]:
        """Which live rules fired. Empty means not risky."""
        signals = set()
        if self._digit_run.search(text):
            signals.add(RiskSignal.DIGIT_RUN)
        if "@" in text:
            signals.add(RiskSignal.AT_SIGN)
        return frozenset(signals) if signals else NO_SIGNALS

    def final_signals(self, text: str) -> FrozenSet[RiskSignal]:
        """Which final rules fired. Empty means not risky."""
        signals = set()
        if self._phone.search(text):
            signals.add(RiskSignal.PHONE)
        if self._email.search(text):
            signals.add(RiskSignal.EMAIL)
        return frozenset(signals) if signals else NO_SIGNALS


_default_scanner = SafetyScanner()


def get_scanner() -> SafetyScanner:
    """Return the process-wide scanner built with default configuration."""
    return _default_scanner


def scan_live(text: str) -> bool:
    """Live scan with the default configuration."""
    return _default_scanner.scan_live(text)


def scan_final(text: str) -> bool:
    """Final scan with the default configuration."""
    return _default_scanner.scan_final(text)
