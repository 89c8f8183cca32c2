"""
Database connection factory utilities for recordmap.

Provides the default connection provider used by ``RecordMapper`` when the
caller does not pass a connection: a pooled psycopg connection borrowed for
the duration of one operation. The PoolManager singleton owns the pool and
closes it on interpreter exit.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import contextmanager
from typing import Callable, ContextManager, Generator, Optional

import psycopg
from psycopg import Connection
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from recordmap.config import get_settings
from recordmap.utils.logging import get_logger

log = get_logger(__name__)

ConnectionProvider = Callable[[], ContextManager[Connection]]


class PoolManager:
    """
    Thread-safe singleton for managing the database connection pool.

    Handles lifecycle management with automatic cleanup via atexit hook.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._pool: Optional[ConnectionPool] = None
                atexit.register(cls._instance.close)
            return cls._instance

    def get_pool(self, min_size: Optional[int] = None, max_size: Optional[int] = None) -> ConnectionPool:
        """
        Get or create the connection pool.

        Parameters
        ----------
        min_size : int, optional
            Minimum number of idle connections to keep (defaults to settings).
        max_size : int, optional
            Maximum total connections in the pool (defaults to settings).

        Returns
        -------
        ConnectionPool
            The managed pool instance.
        """
        with self._lock:
            if self._pool is None:
                settings = get_settings()
                self._pool = ConnectionPool(
                    conninfo=settings.dsn,
                    min_size=min_size or settings.db_pool_min,
                    max_size=max_size or settings.db_pool_max,
                    open=True,
                )
                log.info(
                    "Opened connection pool",
                    extra={"db_host": settings.db_host, "db_name": settings.db_name},
                )
            return self._pool

    @contextmanager
    def connection(self) -> Generator[Connection, None, None]:
        """
        Borrow a connection from the pool.

        The pool commits when the block exits cleanly and rolls back when it
        raises.

        Example
        -------
            with PoolManager().connection() as conn:
                users.find(1, conn=conn)
        """
        pool = self.get_pool()
        with pool.connection() as conn:
            yield conn

    def close(self) -> None:
        """
        Close the pool and release its connections.

        This is called automatically on exit via atexit hook.
        """
        with self._lock:
            if self._pool is not None:
                pool, self._pool = self._pool, None
                pool.close()


def default_connection() -> ContextManager[Connection]:
    """The process-wide default connection provider."""
    return PoolManager().connection()


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None) -> Connection:
    """
    Open a dedicated connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Use this for one-off operations (the CLI); the mapper uses the pool.

    Returns
    -------
    Connection
        A new psycopg connection instance.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or get_settings().dsn)


__all__ = [
    "ConnectionProvider",
    "PoolManager",
    "default_connection",
    "get_sync_connection",
]
