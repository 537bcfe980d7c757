"""Database connection management for zone analytics services.

Provides connection pooling, health checks, and repository base classes
for PostgreSQL document storage.
"""

from .connection import (
    DatabaseConfig,
    ConnectionManager,
    connection_manager_from_env,
)
from .repository import (
    BaseRepository,
    RepositoryError,
    NotFoundError,
    datetime_to_json,
    datetime_from_json,
)

__all__ = [
    "DatabaseConfig",
    "ConnectionManager",
    "connection_manager_from_env",
    "BaseRepository",
    "RepositoryError",
    "NotFoundError",
    "datetime_to_json",
    "datetime_from_json",
]
