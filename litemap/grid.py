"""
GridReader: sequential access to the result sets of a multi-statement batch.

    async with await query_multiple_async(conn, "select 1; select 2") as grid:
        first = await grid.read(int)    # [1]
        second = await grid.read(int)   # [2]
"""

from __future__ import annotations

from contextlib import AsyncExitStack
from typing import Any, Callable, List, Optional, Sequence

from litemap.drivers.abstract import GridCursor
from litemap.errors import GridConsumedError, MultipleRowsError, NoRowsError
from litemap.mapping.materializer import materialize, materialize_multi


class GridReader:
    """
    Reads the result sets of one batch in order, each exactly once.

    Closing the reader releases the cursor and any connection that was
    opened or borrowed for the batch.
    """

    def __init__(self, cursor: GridCursor, resources: AsyncExitStack, use_cache: bool = True) -> None:
        self._cursor = cursor
        self._resources = resources
        self._use_cache = use_cache
        self._consumed = False
        self._closed = False
        self.result_index = 0

    @property
    def is_consumed(self) -> bool:
        return self._consumed

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_readable(self) -> None:
        if self._closed:
            raise GridConsumedError("The grid reader has been closed")
        if self._consumed:
            raise GridConsumedError(
                "Query results must be consumed in the correct order, and each result can only be consumed once"
            )

    async def _advance(self) -> None:
        self.result_index += 1
        if not await self._cursor.next_set():
            self._consumed = True

    async def read(self, target: Any = None) -> List[Any]:
        """Map the next result set onto ``target`` (dynamic rows when None)."""
        self._ensure_readable()
        result = await self._cursor.fetch_all()
        await self._advance()
        return materialize(result, target, self._use_cache)

    async def read_first(self, target: Any = None) -> Any:
        rows = await self.read(target)
        if not rows:
            raise NoRowsError()
        return rows[0]

    async def read_first_or_default(self, target: Any = None) -> Optional[Any]:
        rows = await self.read(target)
        return rows[0] if rows else None

    async def read_single(self, target: Any = None) -> Any:
        rows = await self.read(target)
        if not rows:
            raise NoRowsError()
        if len(rows) > 1:
            raise MultipleRowsError()
        return rows[0]

    async def read_single_or_default(self, target: Any = None) -> Optional[Any]:
        rows = await self.read(target)
        if len(rows) > 1:
            raise MultipleRowsError()
        return rows[0] if rows else None

    async def read_multimap(
        self, types: Sequence[Any], map_fn: Callable[..., Any], split_on: str = "id"
    ) -> List[Any]:
        """Multi-map the next result set, as ``query_multimap_async`` does."""
        self._ensure_readable()
        result = await self._cursor.fetch_all()
        await self._advance()
        return materialize_multi(result, types, map_fn, split_on, self._use_cache)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._resources.aclose()

    async def __aenter__(self) -> "GridReader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        del exc_type, exc, tb
        await self.close()
        return False


__all__ = ["GridReader"]
