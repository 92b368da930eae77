"""Wallaplus backend services."""
