"""Safety Service: deterministic detection of off-platform contact exchange.

Components:
- scanner.py: SafetyScanner with the live (per-keystroke) and final
  (at-send) passes
- config.py: Detection patterns and fixed warning copy
- handler.py: Flask HTTP endpoints (/health, /scan/live, /scan/final)

Usage:
    from wallaplus.services.safety_service import scan_live, scan_final
    scan_live("llámame al 666123456")    # True
    scan_final("nos vemos en la plaza")  # False
"""

from .scanner import RiskSignal, SafetyScanner, get_scanner, scan_final, scan_live
from .config import (
    LIVE_WARNING_TEXT,
    SAFETY_RULE_TEXT,
    SYSTEM_WARNING_TEXT,
    SafetyConfig,
)

__all__ = [
    "RiskSignal",
    "SafetyScanner",
    "get_scanner",
    "scan_final",
    "scan_live",
    "SafetyConfig",
    "LIVE_WARNING_TEXT",
    "SAFETY_RULE_TEXT",
    "SYSTEM_WARNING_TEXT",
]
