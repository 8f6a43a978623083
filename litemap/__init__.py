"""
litemap - a small asynchronous SQL-to-object mapper for PostgreSQL.

Write the SQL yourself, reference parameters as ``@name`` and get back
scalars, dataclasses, pydantic models, plain objects or dynamic rows:

- ``query_async`` / ``stream_async`` and the first/single variants
- ``query_multimap_async`` to split one row into several objects
- ``execute_async`` / ``execute_scalar_async``
- ``query_multiple_async`` to read multi-statement batches result by result
- blocking ``query`` / ``execute`` / ``execute_scalar`` in ``litemap.sync``

Works with psycopg (v3) and asyncpg connections, their pools, or a DSN.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from litemap.command import CancellationToken, CommandDefinition, CommandFlags
from litemap.config import Settings, get_settings
from litemap.errors import (
    CommandCancelledError,
    DataMappingError,
    GridConsumedError,
    MapperError,
    MultiMapError,
    MultipleRowsError,
    NoRowsError,
    UnsupportedOperationError,
)
from litemap.grid import GridReader
from litemap.mapping.rows import Row
from litemap.query import (
    execute_async,
    execute_scalar_async,
    get_cached_query_count,
    purge_query_cache,
    query_async,
    query_first_async,
    query_first_or_default_async,
    query_multimap_async,
    query_multiple_async,
    query_single_async,
    query_single_or_default_async,
    stream_async,
)
from litemap.sync import run_sync
from litemap.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Commands
    "CancellationToken",
    "CommandDefinition",
    "CommandFlags",
    # Async surface
    "execute_async",
    "execute_scalar_async",
    "query_async",
    "query_first_async",
    "query_first_or_default_async",
    "query_multimap_async",
    "query_multiple_async",
    "query_single_async",
    "query_single_or_default_async",
    "stream_async",
    "GridReader",
    "Row",
    # Cache
    "get_cached_query_count",
    "purge_query_cache",
    # Blocking helpers live in litemap.sync; only the runner is re-exported
    # so the package attribute `query` stays the litemap.query module.
    "run_sync",
    # Errors
    "CommandCancelledError",
    "DataMappingError",
    "GridConsumedError",
    "MapperError",
    "MultiMapError",
    "MultipleRowsError",
    "NoRowsError",
    "UnsupportedOperationError",
    # Logging
    "configure_logging",
    "get_logger",
]
