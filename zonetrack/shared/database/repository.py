"""Base repository pattern for document-shaped entities.

Each entity is stored as a JSONB document plus a handful of scalar
columns used as the unique key and as query filters. Without a
connection manager the repository keeps entities in memory with the
same semantics (development and tests).
"""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

from psycopg2.extras import Json

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    """Base exception for repository errors."""
    pass


class NotFoundError(RepositoryError):
    """Entity not found in database."""
    code = "not_found"


def datetime_to_json(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def datetime_from_json(value: Optional[str]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common operations.

    Subclasses describe how an entity maps to a document and to its
    indexed columns, and inherit:
    - Upsert on the key columns
    - Equality filtering on indexed columns (None matches NULL)
    - PostgreSQL or in-memory storage
    """

    def __init__(
        self,
        connection_manager: Optional[ConnectionManager],
        table_name: str,
        key_columns: Tuple[str, ...],
        index_columns: Tuple[str, ...] = (),
    ):
        """Initialize repository.

        Args:
            connection_manager: Database connection manager, None for in-memory
            table_name: Name of the database table
            key_columns: Columns forming the unique key
            index_columns: Additional filterable columns
        """
        self.connection_manager = connection_manager
        self.table_name = table_name
        self.key_columns = key_columns
        self.columns = key_columns + tuple(
            c for c in index_columns if c not in key_columns
        )

        self._memory_store: Dict[Tuple[Any, ...], T] = {}
        self._memory_lock = threading.Lock()

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={
                "table_name": table_name,
                "backend": "memory" if connection_manager is None else "postgresql",
            }
        )

    @property
    def uses_memory(self) -> bool:
        return self.connection_manager is None

    @abstractmethod
    def _document_to_entity(self, document: Dict[str, Any]) -> T:
        """Convert a stored JSON document to an entity."""
        pass

    @abstractmethod
    def _entity_to_document(self, entity: T) -> Dict[str, Any]:
        """Convert an entity to a JSON-serializable document."""
        pass

    @abstractmethod
    def _entity_to_columns(self, entity: T) -> Dict[str, Any]:
        """Values of the key and index columns for an entity."""
        pass

    def _key_of(self, entity: T) -> Tuple[Any, ...]:
        columns = self._entity_to_columns(entity)
        return tuple(columns[c] for c in self.key_columns)

    def _check_columns(self, criteria: Dict[str, Any]) -> None:
        unknown = [c for c in criteria if c not in self.columns]
        if unknown:
            raise RepositoryError(
                f"Unknown filter columns for {self.table_name}: {unknown}"
            )

    def _where_clause(self, criteria: Dict[str, Any]) -> Tuple[str, List[Any]]:
        self._check_columns(criteria)
        clauses = []
        params: List[Any] = []
        for column, value in criteria.items():
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = %s")
                params.append(value)
        where = " AND ".join(clauses) if clauses else "TRUE"
        return where, params

    def _matches(self, entity: T, criteria: Dict[str, Any]) -> bool:
        columns = self._entity_to_columns(entity)
        return all(columns.get(c) == v for c, v in criteria.items())

    def find(self, **criteria: Any) -> List[T]:
        """Find entities whose indexed columns equal the given values.

        Args:
            **criteria: Column name to required value (None matches NULL)

        Returns:
            Matching entities, ordered by key
        """
        if self.uses_memory:
            self._check_columns(criteria)
            with self._memory_lock:
                entities = list(self._memory_store.values())
            return [e for e in entities if self._matches(e, criteria)]

        where, params = self._where_clause(criteria)
        query = (
            f"SELECT document FROM {self.table_name} WHERE {where} "
            f"ORDER BY {', '.join(self.key_columns)}"
        )
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    rows = cur.fetchall()
        except Exception as e:
            logger.error(
                "REPOSITORY_QUERY_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Failed to query {self.table_name}: {e}")

        return [self._document_to_entity(row[0]) for row in rows]

    def find_in(self, column: str, values: Iterable[Any]) -> List[T]:
        """Find entities whose column holds any of the given values.

        One query regardless of how many values are given.
        """
        self._check_columns({column: None})
        wanted = list(dict.fromkeys(v for v in values if v is not None))
        if not wanted:
            return []

        if self.uses_memory:
            with self._memory_lock:
                entities = list(self._memory_store.values())
            allowed = set(wanted)
            return [
                e for e in entities
                if self._entity_to_columns(e).get(column) in allowed
            ]

        query = (
            f"SELECT document FROM {self.table_name} WHERE {column} = ANY(%s) "
            f"ORDER BY {', '.join(self.key_columns)}"
        )
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, [wanted])
                    rows = cur.fetchall()
        except Exception as e:
            logger.error(
                "REPOSITORY_QUERY_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Failed to query {self.table_name}: {e}")

        return [self._document_to_entity(row[0]) for row in rows]

    def find_one(self, **criteria: Any) -> Optional[T]:
        """Find the first entity matching the criteria, or None."""
        matches = self.find(**criteria)
        return matches[0] if matches else None

    def get(self, **criteria: Any) -> T:
        """Like find_one but raises NotFoundError when nothing matches."""
        entity = self.find_one(**criteria)
        if entity is None:
            raise NotFoundError(f"No {self.table_name} entry matching {criteria}")
        return entity

    def save(self, entity: T) -> T:
        """Save entity (insert or update on the key columns).

        Args:
            entity: Entity to save

        Returns:
            Saved entity
        """
        if self.uses_memory:
            with self._memory_lock:
                self._memory_store[self._key_of(entity)] = entity
            logger.debug(
                "ENTITY_STORED_MEMORY",
                extra={"table_name": self.table_name}
            )
            return entity

        columns = self._entity_to_columns(entity)
        names = list(columns.keys()) + ["document"]
        values = list(columns.values()) + [Json(self._entity_to_document(entity))]
        placeholders = ", ".join(["%s"] * len(values))
        update_clause = ", ".join(
            f"{name} = EXCLUDED.{name}" for name in names if name not in self.key_columns
        )

        query = f"""
            INSERT INTO {self.table_name} ({", ".join(names)})
            VALUES ({placeholders})
            ON CONFLICT ({", ".join(self.key_columns)}) DO UPDATE SET {update_clause}
            RETURNING document
        """

        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, values)
                    row = cur.fetchone()
                    conn.commit()
        except Exception as e:
            logger.error(
                "REPOSITORY_SAVE_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Failed to save to {self.table_name}: {e}")

        if row:
            return self._document_to_entity(row[0])
        return entity

    def _update_in_memory(self, key: Tuple[Any, ...], change: Callable[[T], T]) -> Optional[T]:
        """Replace a stored entity with change(entity) under the store lock.

        Returns the new entity, or None when nothing is stored under key.
        Exceptions raised by change leave the entity untouched.
        """
        with self._memory_lock:
            current = self._memory_store.get(key)
            if current is None:
                return None
            updated = change(current)
            self._memory_store[key] = updated
            return updated

    def _update_returning(self, query: str, params: List[Any]) -> Optional[T]:
        """Run a single-row UPDATE ... RETURNING document and commit.

        Returns the updated entity, or None when no row qualified.
        """
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    row = cur.fetchone()
                    conn.commit()
        except Exception as e:
            logger.error(
                "REPOSITORY_UPDATE_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Failed to update {self.table_name}: {e}")

        return self._document_to_entity(row[0]) if row else None

    def delete(self, **criteria: Any) -> int:
        """Delete entities matching the criteria.

        Returns:
            Number of deleted entities
        """
        if self.uses_memory:
            self._check_columns(criteria)
            with self._memory_lock:
                doomed = [
                    key for key, entity in self._memory_store.items()
                    if self._matches(entity, criteria)
                ]
                for key in doomed:
                    del self._memory_store[key]
            return len(doomed)

        where, params = self._where_clause(criteria)
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(f"DELETE FROM {self.table_name} WHERE {where}", params)
                    conn.commit()
                    return cur.rowcount
        except Exception as e:
            logger.error(
                "REPOSITORY_DELETE_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"Failed to delete from {self.table_name}: {e}")

    def count(self, **criteria: Any) -> int:
        """Count entities matching the criteria."""
        if self.uses_memory:
            return len(self.find(**criteria))

        where, params = self._where_clause(criteria)
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT COUNT(*) FROM {self.table_name} WHERE {where}", params)
                row = cur.fetchone()

                return row[0] if row else 0
