"""
Database connection factory utilities for litemap.

Every public query function accepts a *connection source*:

- an open ``psycopg.AsyncConnection`` or asyncpg connection: used as-is and
  left open for the caller;
- a ``psycopg_pool.AsyncConnectionPool`` or ``asyncpg.Pool``: a connection
  is borrowed for the duration of the command;
- a DSN string: a dedicated connection is opened for the command and closed
  afterwards.

The PoolManager singleton owns the default psycopg pool built from settings.
Dedicated connections are opened with retry logic (tenacity) for transient
connection failures.
"""

from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import asyncpg
import psycopg
from psycopg import AsyncConnection, sql
from psycopg.pq import TransactionStatus
from psycopg_pool import AsyncConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from litemap.config import get_settings
from litemap.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn() -> str:
    """Compose a DSN string from settings."""
    settings = get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


class PoolManager:
    """
    Thread-safe singleton owning the default async connection pool.
    """

    _instance: Optional["PoolManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PoolManager":
        """Create or return the singleton instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._async_pool: Optional[AsyncConnectionPool] = None
            return cls._instance

    async def get_async_pool(self, min_size: int = 1, max_size: int = 10) -> AsyncConnectionPool:
        """
        Get or create the asynchronous connection pool.

        Parameters
        ----------
        min_size : int
            Minimum number of idle connections to keep.
        max_size : int
            Maximum total connections in the pool.

        Returns
        -------
        AsyncConnectionPool
            The managed async pool instance, opened.
        """
        with self._lock:
            if self._async_pool is None:
                self._async_pool = AsyncConnectionPool(
                    conninfo=build_dsn(), min_size=min_size, max_size=max_size, open=False
                )
            pool = self._async_pool
        await pool.open()
        return pool

    async def close_all(self) -> None:
        """
        Close the managed pool and release its connections.
        """
        with self._lock:
            pool, self._async_pool = self._async_pool, None
        if pool is not None:
            await pool.close()


async def get_async_pool(min_size: int = 1, max_size: int = 10) -> AsyncConnectionPool:
    """
    Get or create the default asynchronous pool via PoolManager.
    """
    return await PoolManager().get_async_pool(min_size=min_size, max_size=max_size)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, OSError)),
    reraise=True,
)
async def get_async_connection(dsn: Optional[str] = None, autocommit: bool = True) -> AsyncConnection:
    """
    Open a dedicated asynchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection
    errors.

    Parameters
    ----------
    dsn : str | None
        Connection string; defaults to the one built from settings.
    autocommit : bool
        Whether statements commit as they complete.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return await AsyncConnection.connect(dsn or build_dsn(), autocommit=autocommit)


@asynccontextmanager
async def open_connection(source: Any) -> AsyncIterator[Any]:
    """
    Resolve a connection source into an open connection for one command.

    Connections the caller passed in stay open; anything opened or borrowed
    here is closed or returned on exit.
    """
    if isinstance(source, str):
        conn = await get_async_connection(source)
        log.debug("Opened dedicated connection", extra={"source": "dsn"})
        try:
            yield conn
        finally:
            await conn.close()
    elif isinstance(source, AsyncConnectionPool):
        async with source.connection() as conn:
            yield conn
    elif isinstance(source, asyncpg.Pool):
        async with source.acquire() as conn:
            yield conn
    else:
        yield source


@asynccontextmanager
async def statement_timeout(conn: AsyncConnection, seconds: Optional[float]) -> AsyncIterator[None]:
    """
    Apply a server-side statement timeout for the enclosed commands.

    The timeout is reset afterwards unless the transaction failed, in which
    case rolling back already discards the setting.
    """
    if not seconds:
        yield
        return
    timeout_ms = max(int(seconds * 1000), 1)
    await conn.execute(sql.SQL("SET statement_timeout = {}").format(sql.Literal(timeout_ms)))
    try:
        yield
    finally:
        if conn.info.transaction_status != TransactionStatus.INERROR and not conn.closed:
            await conn.execute("RESET statement_timeout")


__all__ = [
    "PoolManager",
    "build_dsn",
    "get_async_connection",
    "get_async_pool",
    "open_connection",
    "statement_timeout",
]
