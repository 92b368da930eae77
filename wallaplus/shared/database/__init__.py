"""PostgreSQL access for Wallaplus services.

Provides connection pooling, health checks and a repository base class.
"""

from .connection import (
    DatabaseConfig,
    ConnectionManager,
)
from .repository import (
    BaseRepository,
    RepositoryError,
    NotFoundError,
    DuplicateError,
)

__all__ = [
    "DatabaseConfig",
    "ConnectionManager",
    "BaseRepository",
    "RepositoryError",
    "NotFoundError",
    "DuplicateError",
]
