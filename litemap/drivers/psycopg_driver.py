"""
psycopg (v3) driver.

Buffered commands run on a client-side binding cursor so that multi-statement
batches such as ``create temp table ...; insert ...`` accept parameters and
return every result set. Reads skip results without rows, so
``create ...; insert ...; select ...`` returns the rows of the select. Unbuffered queries use a named server-side cursor
inside a transaction and read it with ``fetchmany``.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, AsyncIterator, Optional

from psycopg import AsyncClientCursor, AsyncConnection, AsyncCursor
from psycopg.rows import tuple_row

from litemap.command import CancellationToken, run_cancellable
from litemap.drivers.abstract import AbstractDriver, register_driver
from litemap.infrastructure.db_factory import statement_timeout
from litemap.mapping.materializer import ResultSet


def _skip_rowless(cur: AsyncCursor) -> bool:
    """
    Advance past results without rows (DDL, DML, SET).

    Returns False when no result with rows is left.
    """
    while cur.description is None:
        if not cur.nextset():
            return False
    return True


async def _read_current(cur: AsyncCursor) -> ResultSet:
    """Read the result set the cursor is positioned on."""
    if cur.description is None:
        return ResultSet(columns=(), rows=[])
    columns = tuple(column.name for column in cur.description)
    rows = await cur.fetchall()
    return ResultSet(columns=columns, rows=list(rows))


class _PsycopgGrid:
    """GridCursor over a client cursor that already holds every result."""

    def __init__(self, cur: AsyncClientCursor) -> None:
        self._cur = cur

    async def fetch_all(self) -> ResultSet:
        return await _read_current(self._cur)

    async def next_set(self) -> bool:
        return bool(self._cur.nextset()) and _skip_rowless(self._cur)

    async def close(self) -> None:
        await self._cur.close()


class PsycopgDriver(AbstractDriver):
    name: str = "psycopg"
    paramstyle = "pyformat"

    def _cursor(self, conn: AsyncConnection) -> AsyncClientCursor:
        return AsyncClientCursor(conn, row_factory=tuple_row)

    async def _run(
        self,
        conn: AsyncConnection,
        cur: AsyncCursor,
        sql: str,
        args: Any,
        token: Optional[CancellationToken],
    ) -> None:
        await run_cancellable(cur.execute(sql, args), token, lambda task: self.interrupt(conn, task))

    async def fetch(self, conn, sql, args, *, timeout=None, token=None) -> ResultSet:
        async with self._cursor(conn) as cur:
            async with statement_timeout(conn, timeout):
                await self._run(conn, cur, sql, args, token)
            _skip_rowless(cur)
            return await _read_current(cur)

    async def stream(self, conn, sql, args, *, batch_size, timeout=None) -> AsyncIterator[ResultSet]:
        name = f"litemap_{uuid.uuid4().hex[:12]}"
        async with statement_timeout(conn, timeout):
            async with conn.transaction():
                async with conn.cursor(name=name, row_factory=tuple_row) as cur:
                    await cur.execute(sql, args)
                    columns = tuple(column.name for column in cur.description or ())
                    while True:
                        batch = await cur.fetchmany(batch_size)
                        if not batch:
                            break
                        yield ResultSet(columns=columns, rows=list(batch))

    async def execute(self, conn, sql, args, *, timeout=None, token=None) -> int:
        affected = 0
        async with self._cursor(conn) as cur:
            async with statement_timeout(conn, timeout):
                await self._run(conn, cur, sql, args, token)
            while True:
                # Only statements without a result set (DML) count as affected rows.
                if cur.description is None and cur.rowcount > 0:
                    affected += cur.rowcount
                if not cur.nextset():
                    break
        return affected

    async def open_grid(self, conn, sql, args, *, timeout=None, token=None) -> _PsycopgGrid:
        cur = self._cursor(conn)
        try:
            async with statement_timeout(conn, timeout):
                await self._run(conn, cur, sql, args, token)
        except BaseException:
            await cur.close()
            raise
        _skip_rowless(cur)
        return _PsycopgGrid(cur)

    async def interrupt(self, conn: AsyncConnection, task: "asyncio.Future[Any]") -> None:
        # The pending execute() then fails with psycopg.errors.QueryCanceled.
        await conn.cancel_safe()


register_driver(AsyncConnection, PsycopgDriver())

__all__ = ["PsycopgDriver"]
