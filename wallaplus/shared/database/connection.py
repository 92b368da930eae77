"""PostgreSQL connection manager with pooling and health checks.

Backs the durable chat store. Credentials come from environment variables
in development and from AWS Secrets Manager in production.
"""
import json
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

from psycopg2 import pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration."""
    host: str
    port: int = 5432
    database: str = "wallaplus"
    username: str = ""
    password: str = ""
    min_connections: int = 1
    max_connections: int = 10
    connect_timeout: int = 10
    # Upper bound for a single statement; keeps a stuck send from hanging
    statement_timeout_ms: int = 10000
    ssl_mode: str = "prefer"

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create config from environment variables.

        Environment variables:
            DB_HOST: Database host
            DB_PORT: Database port (default 5432)
            DB_NAME: Database name (default wallaplus)
            DB_USER: Database username
            DB_PASSWORD: Database password
            DB_MIN_CONN: Minimum pool connections (default 1)
            DB_MAX_CONN: Maximum pool connections (default 10)
            DB_STATEMENT_TIMEOUT_MS: Per-statement timeout (default 10000)
            DB_SSL_MODE: SSL mode (default prefer)
        """
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "wallaplus"),
            username=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            min_connections=int(os.getenv("DB_MIN_CONN", "1")),
            max_connections=int(os.getenv("DB_MAX_CONN", "10")),
            statement_timeout_ms=int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "10000")),
            ssl_mode=os.getenv("DB_SSL_MODE", "prefer"),
        )

    @classmethod
    def from_secrets_manager(cls, secret_arn: str, region: str = "eu-west-1") -> "DatabaseConfig":
        """Load credentials from AWS Secrets Manager.

        Non-secret settings still come from the environment.

        Args:
            secret_arn: ARN of the secret containing credentials
            region: AWS region
        """
        try:
            import boto3

            client = boto3.client("secretsmanager", region_name=region)
            response = client.get_secret_value(SecretId=secret_arn)
            secret = json.loads(response["SecretString"])
        except Exception as e:
            logger.error(
                "SECRETS_MANAGER_LOAD_FAILED",
                extra={"error": str(e), "secret_arn": secret_arn}
            )
            raise

        env = cls.from_env()
        return cls(
            host=secret.get("host", env.host),
            port=int(secret.get("port", env.port)),
            database=secret.get("dbname", env.database),
            username=secret.get("username", ""),
            password=secret.get("password", ""),
            min_connections=env.min_connections,
            max_connections=env.max_connections,
            statement_timeout_ms=env.statement_timeout_ms,
            ssl_mode=env.ssl_mode,
        )


class ConnectionManager:
    """Owns a psycopg2 ThreadedConnectionPool.

    Built once per process and handed to repositories by reference.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: Optional[pool.ThreadedConnectionPool] = None

        logger.info(
            "CONNECTION_MANAGER_CREATED",
            extra={
                "host": config.host,
                "database": config.database,
                "max_connections": config.max_connections,
            }
        )

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    def initialize(self) -> None:
        """Create the pool. Safe to call more than once."""
        if self._pool is not None:
            return

        try:
            self._pool = pool.ThreadedConnectionPool(
                minconn=self.config.min_connections,
                maxconn=self.config.max_connections,
                host=self.config.host,
                port=self.config.port,
                database=self.config.database,
                user=self.config.username,
                password=self.config.password,
                connect_timeout=self.config.connect_timeout,
                sslmode=self.config.ssl_mode,
                options=f"-c statement_timeout={self.config.statement_timeout_ms}",
            )
        except Exception as e:
            logger.error(
                "CONNECTION_POOL_INIT_FAILED",
                extra={"error": str(e), "host": self.config.host}
            )
            raise

        logger.info(
            "CONNECTION_POOL_INITIALIZED",
            extra={"host": self.config.host, "database": self.config.database}
        )

    @contextmanager
    def get_connection(self):
        """Borrow a connection from the pool.

        Usage:
            with manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        """
        self.initialize()

        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    def health_check(self) -> Dict[str, Any]:
        """Check database connectivity for readiness probes."""
        if self._pool is None:
            return {"status": "not_initialized", "healthy": False}

        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
        except Exception as e:
            logger.error(
                "DATABASE_HEALTH_CHECK_FAILED",
                extra={"error": str(e)}
            )
            return {"status": "error", "healthy": False, "error": str(e)}

        return {
            "status": "connected",
            "healthy": True,
            "host": self.config.host,
            "database": self.config.database,
        }

    def close(self) -> None:
        """Close all pooled connections. Call on shutdown."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("CONNECTION_POOL_CLOSED")
