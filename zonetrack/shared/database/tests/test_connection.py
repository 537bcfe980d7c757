"""Tests for database connection manager."""
import json
from unittest.mock import MagicMock, patch

import pytest

from zonetrack.shared.database.connection import (
    ConnectionManager,
    DatabaseConfig,
    connection_manager_from_env,
)

POOL = "zonetrack.shared.database.connection.pool.ThreadedConnectionPool"


class TestDatabaseConfig:
    """Tests for DatabaseConfig dataclass."""

    def test_default_values(self):
        config = DatabaseConfig(host="localhost")

        assert config.port == 5432
        assert config.database == "zonetrack"
        assert config.max_connections == 10
        assert config.statement_timeout_ms == 30000

    def test_from_env(self):
        with patch.dict("os.environ", {
            "DB_HOST": "env-host",
            "DB_PORT": "5434",
            "DB_NAME": "env_db",
            "DB_USER": "env_user",
            "DB_MAX_CONN": "25",
            "DB_STATEMENT_TIMEOUT_MS": "0",
        }, clear=True):
            config = DatabaseConfig.from_env()

        assert config.host == "env-host"
        assert config.port == 5434
        assert config.database == "env_db"
        assert config.username == "env_user"
        assert config.max_connections == 25
        assert config.statement_timeout_ms == 0

    def test_from_secrets_manager_overlays_environment(self):
        client = MagicMock()
        client.get_secret_value.return_value = {
            "SecretString": json.dumps({
                "host": "secret-host",
                "port": 6543,
                "username": "svc",
                "password": "pw",
            })
        }
        with patch.dict("os.environ", {"DB_NAME": "analytics", "DB_MAX_CONN": "12"}, clear=True), \
                patch("boto3.client", return_value=client) as make_client:
            config = DatabaseConfig.from_secrets_manager("arn:secret", region="eu-west-1")

        make_client.assert_called_once_with("secretsmanager", region_name="eu-west-1")
        assert config.host == "secret-host"
        assert config.port == 6543
        assert config.database == "analytics"
        assert config.username == "svc"
        assert config.max_connections == 12

    def test_pool_widened_for_batch_concurrency(self):
        config = DatabaseConfig(host="db", max_connections=5)

        assert config.with_pool_for(12).max_connections == 12
        assert config.with_pool_for(3) is config

    def test_connect_kwargs(self):
        kwargs = DatabaseConfig(host="db", statement_timeout_ms=5000).connect_kwargs()

        assert kwargs["dbname"] == "zonetrack"
        assert kwargs["application_name"] == "zonetrack"
        assert kwargs["options"] == "-c statement_timeout=5000"

    def test_statement_timeout_disabled(self):
        kwargs = DatabaseConfig(host="db", statement_timeout_ms=0).connect_kwargs()

        assert "options" not in kwargs


class TestConnectionManager:
    """Tests for ConnectionManager class."""

    def test_pool_is_lazy(self):
        manager = ConnectionManager(DatabaseConfig(host="localhost"))

        assert manager.is_initialized is False

    @patch(POOL)
    def test_initialize_once(self, pool_class):
        manager = ConnectionManager(DatabaseConfig(host="db", max_connections=4))

        manager.initialize()
        manager.initialize()

        pool_class.assert_called_once()
        args, kwargs = pool_class.call_args
        assert args == (2, 4)
        assert kwargs["host"] == "db"
        assert manager.is_initialized is True

    @patch(POOL)
    def test_connection_returned_to_pool(self, pool_class):
        pool_instance = pool_class.return_value
        manager = ConnectionManager(DatabaseConfig(host="db"))

        with manager.get_connection() as conn:
            assert conn is pool_instance.getconn.return_value

        pool_instance.putconn.assert_called_once_with(conn)
        conn.rollback.assert_not_called()

    @patch(POOL)
    def test_failed_body_rolls_back(self, pool_class):
        pool_instance = pool_class.return_value
        conn = pool_instance.getconn.return_value
        manager = ConnectionManager(DatabaseConfig(host="db"))

        with pytest.raises(RuntimeError):
            with manager.get_connection():
                raise RuntimeError("constraint violated")

        conn.rollback.assert_called_once()
        pool_instance.putconn.assert_called_once_with(conn)

    @patch(POOL)
    def test_initialize_failure_propagates(self, pool_class):
        pool_class.side_effect = Exception("could not connect")
        manager = ConnectionManager(DatabaseConfig(host="db"))

        with pytest.raises(Exception, match="could not connect"):
            manager.initialize()
        assert manager.is_initialized is False

    def test_health_check_not_initialized(self):
        health = ConnectionManager(DatabaseConfig(host="localhost")).health_check()

        assert health == {"status": "not_initialized", "healthy": False}

    @patch(POOL)
    def test_health_check_connected(self, pool_class):
        manager = ConnectionManager(DatabaseConfig(host="db"))
        manager.initialize()

        health = manager.health_check()

        assert health["healthy"] is True
        assert health["status"] == "connected"
        assert health["latency_ms"] >= 0

    @patch(POOL)
    def test_health_check_error(self, pool_class):
        pool_class.return_value.getconn.side_effect = Exception("timeout")
        manager = ConnectionManager(DatabaseConfig(host="db"))
        manager.initialize()

        health = manager.health_check()

        assert health["healthy"] is False
        assert health["error"] == "timeout"

    @patch(POOL)
    def test_close(self, pool_class):
        manager = ConnectionManager(DatabaseConfig(host="db"))
        manager.initialize()

        manager.close()

        pool_class.return_value.closeall.assert_called_once()
        assert manager.is_initialized is False


class TestConnectionManagerFromEnv:
    """Tests for storage selection from the environment."""

    def test_memory_without_database_settings(self):
        with patch.dict("os.environ", {}, clear=True):
            assert connection_manager_from_env(10) is None

    def test_db_host_with_pool_widened(self):
        with patch.dict("os.environ", {"DB_HOST": "db", "DB_MAX_CONN": "4"}, clear=True):
            manager = connection_manager_from_env(10)

        assert manager.config.host == "db"
        assert manager.config.max_connections == 10

    def test_secret_arn_takes_precedence(self):
        secret_config = DatabaseConfig(host="secret-host")
        env = {"DB_SECRET_ARN": "arn:db", "DB_HOST": "env-host", "AWS_REGION": "eu-west-1"}
        with patch.dict("os.environ", env, clear=True), \
                patch.object(DatabaseConfig, "from_secrets_manager",
                             return_value=secret_config) as load:
            manager = connection_manager_from_env()

        load.assert_called_once_with("arn:db", region="eu-west-1")
        assert manager.config.host == "secret-host"
