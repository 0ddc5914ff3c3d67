"""
Pooled PostgreSQL access for the record store.

Connection parameters come from ``DB_*`` environment variables unless
passed explicitly. Rows are returned as dictionaries.
"""
import os
import time
from contextlib import contextmanager
from typing import Any, Iterator

from psycopg import OperationalError
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool
from pydantic import BaseModel, Field

from clinic_records.observability.logger import get_logger

logger = get_logger(__name__)


class PoolClosedError(RuntimeError):
    """Raised when a statement is issued on a pool that is not open"""


class ConnectionSettings(BaseModel):
    """Where the record database lives and how many connections to hold"""

    host: str = "localhost"
    port: int = 5432
    database: str = "clinic"
    user: str = "clinic"
    password: str
    min_size: int = Field(default=1, ge=0)
    max_size: int = Field(default=5, ge=1)
    timeout: float = Field(default=10.0, gt=0)

    class Config:
        frozen = True

    def conninfo(self) -> str:
        return make_conninfo(
            host=self.host,
            port=self.port,
            dbname=self.database,
            user=self.user,
            password=self.password,
            connect_timeout=int(self.timeout),
        )


class DatabaseConnectionPool:
    """
    Thin wrapper over psycopg_pool.ConnectionPool.

    Use as a context manager, or call open() and close() around the
    store's lifetime.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 5,
        timeout: float = 10.0,
    ) -> None:
        password = password or os.getenv("DB_PASSWORD")
        if not password:
            raise ValueError("Database password is missing: set DB_PASSWORD or pass password=")

        self.settings = ConnectionSettings(
            host=host or os.getenv("DB_HOST", "localhost"),
            port=port or int(os.getenv("DB_PORT", "5432")),
            database=database or os.getenv("DB_NAME", "clinic"),
            user=user or os.getenv("DB_USER", "clinic"),
            password=password,
            min_size=min_size,
            max_size=max_size,
            timeout=timeout,
        )
        self._pool: ConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self, attempts: int = 3, backoff: float = 2.0) -> None:
        """
        Open the pool, waiting for min_size connections.

        Args:
            attempts: How many times to try before giving up
            backoff: Seconds to sleep between attempts

        Raises:
            OperationalError: If the database stays unreachable
        """
        if self.is_open:
            return

        settings = self.settings
        for attempt in range(1, attempts + 1):
            pool = ConnectionPool(
                conninfo=settings.conninfo(),
                min_size=settings.min_size,
                max_size=settings.max_size,
                timeout=settings.timeout,
                kwargs={"row_factory": dict_row},
                open=False,
            )
            try:
                pool.open(wait=True, timeout=settings.timeout)
            except OperationalError as e:
                pool.close()
                logger.warning(
                    "Could not open database pool",
                    extra={"attempt": attempt, "attempts": attempts, "host": settings.host, "error_message": str(e)},
                )
                if attempt == attempts:
                    raise
                time.sleep(backoff)
            else:
                self._pool = pool
                logger.debug("Database pool open", extra={"host": settings.host, "database": settings.database})
                return

    def close(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            pool.close()

    @contextmanager
    def cursor(self) -> Iterator[Any]:
        """
        Borrow a connection and yield a cursor; commits when the block exits cleanly.

        Raises:
            PoolClosedError: If open() has not been called
        """
        if self._pool is None:
            raise PoolClosedError("Database pool is closed")

        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                yield cur

    def execute_query(self, query: str, params: tuple | None = None) -> list[dict]:
        """Run a statement that returns rows (SELECT or ... RETURNING)."""
        with self.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def execute_command(self, command: str, params: tuple | None = None) -> int:
        """Run a statement for its side effect; returns the affected row count."""
        with self.cursor() as cur:
            cur.execute(command, params)
            return cur.rowcount

    def __enter__(self) -> "DatabaseConnectionPool":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
