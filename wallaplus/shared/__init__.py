"""Shared models, utilities and database access for Wallaplus services."""
