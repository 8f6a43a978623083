"""
asyncpg driver.

asyncpg speaks the binary protocol natively and is the faster option for
plain reads and streaming. Its extended-protocol statements cannot carry
several result sets, so ``query_multiple_async`` is not available here.
Multi-statement scripts without parameters execute statement by statement
inside one transaction so that every affected row is counted.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, List

import asyncpg
from asyncpg.pool import PoolConnectionProxy

from litemap.command import run_cancellable
from litemap.drivers.abstract import AbstractDriver, register_driver
from litemap.errors import UnsupportedOperationError
from litemap.mapping.materializer import ResultSet
from litemap.mapping.params import split_statements

_COUNTED_VERBS = frozenset({"INSERT", "UPDATE", "DELETE", "MERGE", "COPY"})


def _affected_rows(status: str) -> int:
    """Parse a command tag such as ``INSERT 0 1`` or ``UPDATE 3``."""
    parts = (status or "").split()
    if parts and parts[0].upper() in _COUNTED_VERBS and parts[-1].isdigit():
        return int(parts[-1])
    return 0


def _positional(args: Any) -> List[Any]:
    return list(args or ())


class AsyncpgDriver(AbstractDriver):
    name: str = "asyncpg"
    paramstyle = "numeric"

    async def fetch(self, conn, sql, args, *, timeout=None, token=None) -> ResultSet:
        async def _fetch() -> ResultSet:
            statement = await conn.prepare(sql, timeout=timeout)
            columns = tuple(attribute.name for attribute in statement.get_attributes())
            records = await statement.fetch(*_positional(args), timeout=timeout)
            return ResultSet(columns=columns, rows=[tuple(record) for record in records])

        return await run_cancellable(_fetch(), token, lambda task: self.interrupt(conn, task))

    async def stream(self, conn, sql, args, *, batch_size, timeout=None) -> AsyncIterator[ResultSet]:
        async with conn.transaction():
            statement = await conn.prepare(sql, timeout=timeout)
            columns = tuple(attribute.name for attribute in statement.get_attributes())
            cursor = await statement.cursor(*_positional(args), timeout=timeout)
            while True:
                batch = await cursor.fetch(batch_size, timeout=timeout)
                if not batch:
                    break
                yield ResultSet(columns=columns, rows=[tuple(record) for record in batch])

    async def execute(self, conn, sql, args, *, timeout=None, token=None) -> int:
        positional = _positional(args)
        statements = split_statements(sql)
        if len(statements) > 1 and positional:
            raise UnsupportedOperationError(
                "asyncpg cannot bind parameters in a multi-statement batch; "
                "execute the statements one at a time or use a psycopg connection"
            )
        if len(statements) <= 1:
            command = self._execute_one(conn, sql, positional, timeout)
        else:
            command = self._execute_each(conn, statements, timeout)
        return await run_cancellable(command, token, lambda task: self.interrupt(conn, task))

    async def _execute_one(self, conn, sql: str, positional: List[Any], timeout) -> int:
        return _affected_rows(await conn.execute(sql, *positional, timeout=timeout))

    async def _execute_each(self, conn, statements: List[str], timeout) -> int:
        # A script reports only its last command tag; statements run one by one to be counted.
        affected = 0
        async with conn.transaction():
            for statement in statements:
                affected += _affected_rows(await conn.execute(statement, timeout=timeout))
        return affected

    async def open_grid(self, conn, sql, args, *, timeout=None, token=None):
        raise UnsupportedOperationError(
            "asyncpg cannot return several result sets from one command; "
            "use a psycopg connection for query_multiple_async"
        )

    async def interrupt(self, conn, task: "asyncio.Future[Any]") -> None:
        # asyncpg sends a server-side cancel request when the task is cancelled.
        task.cancel()


_driver = AsyncpgDriver()
register_driver(asyncpg.Connection, _driver)
register_driver(PoolConnectionProxy, _driver)

__all__ = ["AsyncpgDriver"]
