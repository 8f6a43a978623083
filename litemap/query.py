"""
Public asynchronous query surface of litemap.

Every function takes a connection source first (open connection, pool or
DSN string; see ``litemap.infrastructure.db_factory.open_connection``) and
either a SQL string plus an optional parameter bag, or a CommandDefinition.

Usage:
    from litemap import query_async, execute_async, query_multiple_async

    names = await query_async(conn, "select name from users where id in @ids", {"ids": [1, 2]}, str)
    added = await execute_async(conn, "insert into tags(name) values (@name)", [{"name": "a"}, {"name": "b"}])
    async with await query_multiple_async(conn, "select 1; select 2") as grid:
        one, two = await grid.read_single(int), await grid.read_single(int)
"""

from __future__ import annotations

import time
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator, Callable, List, Optional, Sequence, Tuple, Union

from litemap.command import CommandDefinition, CommandLike, as_command
from litemap.config import get_settings
from litemap.drivers import Driver, driver_for
from litemap.errors import CommandCancelledError, MultipleRowsError, NoRowsError
from litemap.grid import GridReader
from litemap.infrastructure.db_factory import open_connection
from litemap.mapping.materializer import (
    clear_plan_cache,
    convert_value,
    materialize,
    materialize_multi,
)
from litemap.mapping.params import (
    bind_parameters,
    clear_compiled_cache,
    compile_sql,
    compiled_cache_size,
)
from litemap.utils.logging import get_logger

log = get_logger(__name__)


def _compile(driver: Driver, command: CommandDefinition, parameters: Any) -> Tuple[str, Any]:
    params = bind_parameters(parameters)
    compiled = compile_sql(command.sql, params, driver.paramstyle, command.use_cache)
    return compiled.sql, compiled.arguments(params)


def _log_command(kind: str, driver: Driver, command: CommandDefinition, rows: int, started: float) -> None:
    log.debug(
        f"[COMMAND] {kind}",
        extra={
            "command": kind,
            "driver": driver.name,
            "rows": rows,
            "duration_ms": round((time.perf_counter() - started) * 1000, 3),
            "sql": command.sql if len(command.sql) <= 200 else command.sql[:200] + "...",
        },
    )


async def _fetch(source: Any, command: CommandDefinition, target: Any) -> List[Any]:
    started = time.perf_counter()
    async with open_connection(source) as conn:
        driver = driver_for(conn)
        sql, args = _compile(driver, command, command.parameters)
        result = await driver.fetch(
            conn,
            sql,
            args,
            timeout=command.effective_timeout(),
            token=command.cancellation,
        )
    rows = materialize(result, target, command.use_cache)
    _log_command("query", driver, command, len(rows), started)
    return rows


async def query_async(
    source: Any,
    command: CommandLike,
    param: Any = None,
    target: Any = None,
    **options: Any,
) -> Union[List[Any], AsyncIterator[Any]]:
    """
    Run a query and map each row onto ``target``.

    Parameters
    ----------
    source : connection source
        Open connection, pool or DSN string.
    command : str | CommandDefinition
        SQL text (``@name`` parameters) or a full command definition.
    param : Any
        Parameter bag when ``command`` is a string.
    target : type | None
        Scalar type, dataclass, pydantic model or plain class; dynamic Row
        objects when None.
    **options
        ``flags``, ``command_timeout`` or ``cancellation`` when ``command``
        is a string.

    Returns
    -------
    list
        When the command is buffered (the default).
    AsyncIterator
        When ``CommandFlags.BUFFERED`` is cleared; rows stream from a
        server-side cursor as the iterator is consumed.
    """
    cmd = as_command(command, param, **options)
    if not cmd.buffered:
        return stream_async(source, cmd, target=target)
    return await _fetch(source, cmd, target)


async def stream_async(
    source: Any,
    command: CommandLike,
    param: Any = None,
    target: Any = None,
    **options: Any,
) -> AsyncIterator[Any]:
    """
    Yield mapped rows without buffering the whole result.

    The connection stays in use until the iterator is exhausted or closed.
    A CancellationToken is checked between batches.
    """
    cmd = as_command(command, param, **options)
    token = cmd.cancellation
    batch_size = get_settings().stream_batch_size
    started = time.perf_counter()
    produced = 0
    async with open_connection(source) as conn:
        driver = driver_for(conn)
        sql, args = _compile(driver, cmd, cmd.parameters)
        batches = driver.stream(conn, sql, args, batch_size=batch_size, timeout=cmd.effective_timeout())
        try:
            async for batch in batches:
                if token is not None and token.cancelled:
                    raise CommandCancelledError("The command was cancelled while streaming")
                for item in materialize(batch, target, cmd.use_cache):
                    produced += 1
                    yield item
        finally:
            await batches.aclose()
        _log_command("stream", driver, cmd, produced, started)


async def query_first_async(source: Any, command: CommandLike, param: Any = None, target: Any = None, **options: Any) -> Any:
    """First mapped row; NoRowsError when the query returns nothing."""
    rows = await _fetch(source, as_command(command, param, **options), target)
    if not rows:
        raise NoRowsError()
    return rows[0]


async def query_first_or_default_async(
    source: Any, command: CommandLike, param: Any = None, target: Any = None, **options: Any
) -> Optional[Any]:
    rows = await _fetch(source, as_command(command, param, **options), target)
    return rows[0] if rows else None


async def query_single_async(source: Any, command: CommandLike, param: Any = None, target: Any = None, **options: Any) -> Any:
    """The only mapped row; NoRowsError or MultipleRowsError otherwise."""
    rows = await _fetch(source, as_command(command, param, **options), target)
    if not rows:
        raise NoRowsError()
    if len(rows) > 1:
        raise MultipleRowsError()
    return rows[0]


async def query_single_or_default_async(
    source: Any, command: CommandLike, param: Any = None, target: Any = None, **options: Any
) -> Optional[Any]:
    rows = await _fetch(source, as_command(command, param, **options), target)
    if len(rows) > 1:
        raise MultipleRowsError()
    return rows[0] if rows else None


async def query_multimap_async(
    source: Any,
    command: CommandLike,
    types: Sequence[Any],
    map_fn: Callable[..., Any],
    param: Any = None,
    split_on: str = "id",
    **options: Any,
) -> List[Any]:
    """
    Map each row onto several types and combine them with ``map_fn``.

    The row is split at every column named ``split_on`` (see
    ``split_columns``); ``map_fn`` receives one object per type.

        def link(product, category):
            product.category = category
            return product

        products = await query_multimap_async(conn, sql, [Product, Category], link)
    """
    cmd = as_command(command, param, **options)
    started = time.perf_counter()
    async with open_connection(source) as conn:
        driver = driver_for(conn)
        sql, args = _compile(driver, cmd, cmd.parameters)
        result = await driver.fetch(
            conn, sql, args, timeout=cmd.effective_timeout(), token=cmd.cancellation
        )
    rows = materialize_multi(result, types, map_fn, split_on, cmd.use_cache)
    _log_command("multimap", driver, cmd, len(rows), started)
    return rows


def _parameter_sets(parameters: Any) -> List[Any]:
    """Split an execute-many parameter list into individual bags."""
    if isinstance(parameters, (list, tuple)) and not hasattr(parameters, "_asdict"):
        return list(parameters)
    return [parameters]


async def execute_async(source: Any, command: CommandLike, param: Any = None, **options: Any) -> int:
    """
    Run a batch and return the number of affected rows.

    When the parameters are a list of bags the batch runs once per bag and
    the counts are summed.
    """
    cmd = as_command(command, param, **options)
    started = time.perf_counter()
    affected = 0
    async with open_connection(source) as conn:
        driver = driver_for(conn)
        for parameters in _parameter_sets(cmd.parameters):
            sql, args = _compile(driver, cmd, parameters)
            affected += await driver.execute(
                conn, sql, args, timeout=cmd.effective_timeout(), token=cmd.cancellation
            )
    _log_command("execute", driver, cmd, affected, started)
    return affected


async def execute_scalar_async(
    source: Any, command: CommandLike, param: Any = None, target: Any = None, **options: Any
) -> Any:
    """First column of the first row (converted to ``target``), or None."""
    cmd = as_command(command, param, **options)
    started = time.perf_counter()
    async with open_connection(source) as conn:
        driver = driver_for(conn)
        sql, args = _compile(driver, cmd, cmd.parameters)
        result = await driver.fetch(
            conn, sql, args, timeout=cmd.effective_timeout(), token=cmd.cancellation
        )
    _log_command("scalar", driver, cmd, len(result.rows), started)
    if not result.rows or not result.columns:
        return None
    value = result.rows[0][0]
    return convert_value(value, target, result.columns[0]) if target is not None else value


async def query_multiple_async(source: Any, command: CommandLike, param: Any = None, **options: Any) -> GridReader:
    """
    Run a multi-statement batch and return a GridReader over its results.

    Close the reader (or use it as an async context manager) to release the
    connection when it was opened or borrowed for this call.
    """
    cmd = as_command(command, param, **options)
    started = time.perf_counter()
    resources = AsyncExitStack()
    try:
        conn = await resources.enter_async_context(open_connection(source))
        driver = driver_for(conn)
        sql, args = _compile(driver, cmd, cmd.parameters)
        cursor = await driver.open_grid(
            conn, sql, args, timeout=cmd.effective_timeout(), token=cmd.cancellation
        )
        resources.push_async_callback(cursor.close)
    except BaseException:
        await resources.aclose()
        raise
    _log_command("multiple", driver, cmd, 0, started)
    return GridReader(cursor, resources, use_cache=cmd.use_cache)


def purge_query_cache() -> None:
    """Drop every cached compiled statement and mapping plan."""
    clear_compiled_cache()
    clear_plan_cache()


def get_cached_query_count() -> int:
    return compiled_cache_size()


__all__ = [
    "execute_async",
    "execute_scalar_async",
    "get_cached_query_count",
    "purge_query_cache",
    "query_async",
    "query_first_async",
    "query_first_or_default_async",
    "query_multimap_async",
    "query_multiple_async",
    "query_single_async",
    "query_single_or_default_async",
    "stream_async",
]
