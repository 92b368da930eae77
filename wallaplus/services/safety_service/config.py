"""Safety Service configuration: detection patterns and fixed warning copy.

The final-scan phone pattern models Spanish mobile numbers only; the
marketplace is scoped to a single city. Another region means supplying a
different ``phone_pattern`` rather than editing the scanner.
"""
import os
from dataclasses import dataclass


# Optional country code (+34, 0034 or bare 34), a leading 6 or 7, then eight
# more digits. Any digit group may be preceded by whitespace or hyphens.
SPANISH_MOBILE_PATTERN = r"(?:\+34|0034|34)?[\s-]*[67][\s-]*(?:[0-9][\s-]*){8}"

# local@domain.tld with a 2-4 letter final segment
EMAIL_PATTERN = r"[\w.-]+@(?:[\w-]+\.)+[a-z]{2,4}"


@dataclass(frozen=True)
class SafetyConfig:
    """Configuration for message safety scanning."""

    # Live scan: length of the digit run treated as a phone number
    live_digit_run_length: int = 9

    # Final scan patterns (compiled case-insensitive)
    phone_pattern: str = SPANISH_MOBILE_PATTERN
    email_pattern: str = EMAIL_PATTERN

    region: str = "ES"

    # Longest text the HTTP scan endpoints accept
    max_text_length: int = 2000

    # Version tracking for audit trail
    pattern_version: str = "2026.10.01"

    def __post_init__(self):
        if self.live_digit_run_length < 1:
            raise ValueError(
                f"live_digit_run_length must be positive, got {self.live_digit_run_length}"
            )
        if self.max_text_length < 1:
            raise ValueError(f"max_text_length must be positive, got {self.max_text_length}")

    @classmethod
    def from_env(cls) -> "SafetyConfig":
        """Create config from environment variables.

        Environment variables:
            SAFETY_PHONE_PATTERN: Regex replacing the Spanish mobile pattern
            SAFETY_REGION: Region code the phone pattern models (default ES)
            SAFETY_PATTERN_VERSION: Pattern version reported to clients
            SAFETY_MAX_TEXT_LENGTH: Longest text accepted by the scan endpoints
        """
        defaults = cls()
        return cls(
            phone_pattern=os.getenv("SAFETY_PHONE_PATTERN", defaults.phone_pattern),
            region=os.getenv("SAFETY_REGION", defaults.region),
            pattern_version=os.getenv("SAFETY_PATTERN_VERSION", defaults.pattern_version),
            max_text_length=int(os.getenv("SAFETY_MAX_TEXT_LENGTH", str(defaults.max_text_length))),
        )


# Fixed copy. Not localizable at runtime.
LIVE_WARNING_TEXT = "⚠️ ¡Cuidado! Si te piden hablar por WhatsApp podría ser una estafa."

SYSTEM_WARNING_TEXT = (
    "⚠️ Aviso de seguridad: este mensaje parece contener un teléfono o un email. "
    "Mantén la conversación en Wallaplus y nunca pagues por adelantado ni por Bizum "
    "sin ver el producto."
)

SAFETY_RULE_TEXT = (
    "🔒 Regla de Oro: Nunca envíes dinero por Bizum sin ver el producto antes. "
    "Quedad en sitios públicos de Terrassa."
)
