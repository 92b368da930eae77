"""Shared utilities for Wallaplus services."""
from .notifier import ChangeNotifier
from .pii import hash_pii, hash_text_for_audit, configure_pii_salt

__all__ = ["ChangeNotifier", "hash_pii", "hash_text_for_audit", "configure_pii_salt"]
