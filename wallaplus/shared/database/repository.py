"""Base repository pattern for PostgreSQL-backed entities.

Subclasses declare their table columns and row/entity conversion; this
base provides transactions, lookups and inserts with consistent error
mapping and logging.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Generic, Iterator, List, Optional, Sequence, Tuple, TypeVar

import psycopg2
from psycopg2 import errors as pg_errors

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class NotFoundError(RepositoryError):
    """Entity not found in database."""
    pass


class DuplicateError(RepositoryError):
    """Duplicate entity already exists."""
    pass


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository.

    Subclasses set ``columns`` (in SELECT order) and implement the two
    conversion hooks.
    """

    columns: Tuple[str, ...] = ()

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str,
    ):
        self.connection_manager = connection_manager
        self.table_name = table_name

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={"table_name": table_name}
        )

    @abstractmethod
    def _row_to_entity(self, row: tuple) -> T:
        """Convert a row, ordered as ``columns``, to an entity."""
        pass

    @abstractmethod
    def _entity_to_params(self, entity: T) -> Dict[str, Any]:
        """Convert an entity to a column -> value mapping."""
        pass

    @property
    def select_list(self) -> str:
        return ", ".join(self.columns)

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Run statements in one transaction and yield its cursor.

        Commits on success, rolls back on any error. psycopg2 errors are
        re-raised as RepositoryError (DuplicateError for unique violations).
        """
        with self.connection_manager.get_connection() as conn:
            try:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
            except pg_errors.UniqueViolation as e:
                conn.rollback()
                raise DuplicateError(str(e)) from e
            except psycopg2.Error as e:
                conn.rollback()
                logger.error(
                    "REPOSITORY_TRANSACTION_FAILED",
                    extra={
                        "table_name": self.table_name,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )
                raise RepositoryError(str(e)) from e
            except BaseException:
                conn.rollback()
                raise

    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find entity by ID, or None."""
        with self.transaction() as cur:
            cur.execute(
                f"SELECT {self.select_list} FROM {self.table_name} WHERE id = %s",
                (entity_id,)
            )
            row = cur.fetchone()

        if row is None:
            return None
        return self._row_to_entity(row)

    def get(self, entity_id: str) -> T:
        """Like find_by_id, but raises NotFoundError."""
        entity = self.find_by_id(entity_id)
        if entity is None:
            raise NotFoundError(f"{self.table_name} {entity_id} not found")
        return entity

    def find_where(
        self,
        column: str,
        value: Any,
        order_by: str = "created_at ASC",
        limit: Optional[int] = None,
    ) -> List[T]:
        """Find entities with ``column = value``."""
        query = (
            f"SELECT {self.select_list} FROM {self.table_name} "
            f"WHERE {column} = %s ORDER BY {order_by}"
        )
        params: Tuple[Any, ...] = (value,)
        if limit is not None:
            query += " LIMIT %s"
            params = (value, limit)

        with self.transaction() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()

        return [self._row_to_entity(row) for row in rows]

    def insert(self, entity: T, cur: Optional[Any] = None) -> T:
        """Insert one entity, optionally inside an open transaction."""
        if cur is None:
            with self.transaction() as own_cur:
                self._insert_with(own_cur, entity)
        else:
            self._insert_with(cur, entity)
        return entity

    def insert_many(self, entities: Sequence[T]) -> List[T]:
        """Insert entities in order, all or nothing."""
        with self.transaction() as cur:
            for entity in entities:
                self._insert_with(cur, entity)
        return list(entities)

    def _insert_with(self, cur: Any, entity: T) -> None:
        params = self._entity_to_params(entity)
        columns = list(params.keys())
        placeholders = ", ".join(["%s"] * len(columns))
        cur.execute(
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) VALUES ({placeholders})",
            list(params.values()),
        )
