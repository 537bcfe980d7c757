"""PostgreSQL connection pool for the analytics stores.

Batch recalculation checks out one connection per concurrently running
student, so the pool must be at least as large as the batch size;
DatabaseConfig.with_pool_for() widens it when needed. Credentials come
from the environment in development and from AWS Secrets Manager in
deployed environments.
"""
import json
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, Optional

from psycopg2 import pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the analytics database."""
    host: str
    port: int = 5432
    database: str = "zonetrack"
    username: str = ""
    password: str = ""
    min_connections: int = 2
    max_connections: int = 10
    connect_timeout: int = 10
    ssl_mode: str = "require"
    application_name: str = "zonetrack"
    # Upper bound for any single statement; 0 disables it
    statement_timeout_ms: int = 30000

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create config from environment variables.

        Environment variables:
            DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD
            DB_MIN_CONN / DB_MAX_CONN: Pool bounds (default 2 / 10)
            DB_SSL_MODE: SSL mode (default require)
            DB_STATEMENT_TIMEOUT_MS: Statement timeout (default 30000)
        """
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "zonetrack"),
            username=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            min_connections=int(os.getenv("DB_MIN_CONN", "2")),
            max_connections=int(os.getenv("DB_MAX_CONN", "10")),
            ssl_mode=os.getenv("DB_SSL_MODE", "require"),
            statement_timeout_ms=int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "30000")),
        )

    @classmethod
    def from_secrets_manager(cls, secret_arn: str, region: str = "us-east-1") -> "DatabaseConfig":
        """Environment config with host and credentials from a Secrets Manager secret.

        Args:
            secret_arn: ARN of an RDS-style secret (host, port, dbname,
                username, password)
            region: AWS region

        Raises:
            botocore.exceptions.ClientError: If the secret cannot be read
        """
        import boto3

        try:
            client = boto3.client("secretsmanager", region_name=region)
            secret = json.loads(client.get_secret_value(SecretId=secret_arn)["SecretString"])
        except Exception as e:
            logger.error(
                "DATABASE_SECRET_LOAD_FAILED",
                extra={"secret_arn": secret_arn, "error": str(e)}
            )
            raise

        base = cls.from_env()
        return replace(
            base,
            host=secret.get("host", base.host),
            port=int(secret.get("port", base.port)),
            database=secret.get("dbname", base.database),
            username=secret.get("username", base.username),
            password=secret.get("password", base.password),
        )

    def with_pool_for(self, concurrency: int) -> "DatabaseConfig":
        """Config whose pool can serve `concurrency` simultaneous checkouts."""
        if concurrency <= self.max_connections:
            return self
        return replace(self, max_connections=concurrency)

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for psycopg2.connect."""
        kwargs: Dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.username,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
            "sslmode": self.ssl_mode,
            "application_name": self.application_name,
        }
        if self.statement_timeout_ms > 0:
            kwargs["options"] = f"-c statement_timeout={self.statement_timeout_ms}"
        return kwargs


class ConnectionManager:
    """Lazily created ThreadedConnectionPool shared by all repositories."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: Optional[pool.ThreadedConnectionPool] = None

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    def initialize(self) -> None:
        """Open the pool; a no-op when it is already open."""
        if self._pool is not None:
            return

        try:
            self._pool = pool.ThreadedConnectionPool(
                self.config.min_connections,
                self.config.max_connections,
                **self.config.connect_kwargs(),
            )
        except Exception as e:
            logger.error(
                "CONNECTION_POOL_INIT_FAILED",
                extra={"host": self.config.host, "error": str(e)}
            )
            raise

        logger.info(
            "CONNECTION_POOL_INITIALIZED",
            extra={
                "host": self.config.host,
                "database": self.config.database,
                "max_connections": self.config.max_connections,
            }
        )

    @contextmanager
    def get_connection(self) -> Iterator[Any]:
        """Check a connection out of the pool.

        If the body raises, the open transaction is rolled back before the
        connection goes back to the pool.
        """
        self.initialize()
        conn = self._pool.getconn()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def health_check(self) -> Dict[str, Any]:
        """Round-trip a trivial query and report its latency."""
        if self._pool is None:
            return {"status": "not_initialized", "healthy": False}

        start_time = time.perf_counter()
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
        except Exception as e:
            logger.error("DATABASE_HEALTH_CHECK_FAILED", extra={"error": str(e)})
            return {"status": "error", "healthy": False, "error": str(e)}

        return {
            "status": "connected",
            "healthy": True,
            "database": self.config.database,
            "latency_ms": round((time.perf_counter() - start_time) * 1000, 2),
        }

    def close(self) -> None:
        """Close every pooled connection."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("CONNECTION_POOL_CLOSED")


def connection_manager_from_env(concurrency: int = 0) -> Optional[ConnectionManager]:
    """Connection manager for the configured database, None for in-memory storage.

    DB_SECRET_ARN takes precedence over DB_HOST; with neither set the
    services run against in-memory repositories.

    Args:
        concurrency: Simultaneous checkouts the pool must support
    """
    secret_arn = os.getenv("DB_SECRET_ARN")
    if secret_arn:
        config = DatabaseConfig.from_secrets_manager(
            secret_arn, region=os.getenv("AWS_REGION", "us-east-1")
        )
    elif os.getenv("DB_HOST"):
        config = DatabaseConfig.from_env()
    else:
        logger.warning("IN_MEMORY_STORAGE_SELECTED")
        return None
    return ConnectionManager(config.with_pool_for(concurrency))
