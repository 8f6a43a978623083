"""
Infrastructure package for litemap.

Centralizes database connectivity concerns (DSN building, pooling, resolving
connection sources). Keep this layer focused on I/O and resource
management, decoupled from mapping logic.
"""

from litemap.infrastructure.db_factory import (
    PoolManager,
    build_dsn,
    get_async_connection,
    get_async_pool,
    open_connection,
    statement_timeout,
)

__all__ = [
    "PoolManager",
    "build_dsn",
    "get_async_connection",
    "get_async_pool",
    "open_connection",
    "statement_timeout",
]
