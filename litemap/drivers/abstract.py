"""
Driver interfaces for litemap.

A driver adapts one database client library (psycopg, asyncpg) to the
small set of operations the mapper needs. Drivers never map rows onto
Python types; they hand back ResultSet objects and let the materializer do
the rest.
"""

from __future__ import annotations

import abc
import asyncio
from typing import Any, AsyncIterator, Dict, Optional, Protocol, runtime_checkable

from litemap.command import CancellationToken
from litemap.mapping.materializer import ResultSet
from litemap.mapping.params import ParamStyle


@runtime_checkable
class GridCursor(Protocol):
    """Positioned reader over the successive result sets of one batch."""

    async def fetch_all(self) -> ResultSet:
        """Return the current result set in full."""
        ...

    async def next_set(self) -> bool:
        """Advance to the next result set; False when none is left."""
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class Driver(Protocol):
    """
    Common interface all drivers implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier, used in logs.
    paramstyle : ParamStyle
        Placeholder style that ``@name`` references are compiled to.
    """

    name: str
    paramstyle: ParamStyle

    async def fetch(
        self,
        conn: Any,
        sql: str,
        args: Any,
        *,
        timeout: Optional[float] = None,
        token: Optional[CancellationToken] = None,
    ) -> ResultSet:
        """Run a query and return its (first) result set."""
        ...

    def stream(
        self,
        conn: Any,
        sql: str,
        args: Any,
        *,
        batch_size: int,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[ResultSet]:
        """Yield the rows of a query in batches without buffering them all."""
        ...

    async def execute(
        self,
        conn: Any,
        sql: str,
        args: Any,
        *,
        timeout: Optional[float] = None,
        token: Optional[CancellationToken] = None,
    ) -> int:
        """Run a batch and return the number of rows it affected."""
        ...

    async def open_grid(
        self,
        conn: Any,
        sql: str,
        args: Any,
        *,
        timeout: Optional[float] = None,
        token: Optional[CancellationToken] = None,
    ) -> GridCursor:
        """Run a multi-statement batch and position on its first result set."""
        ...

    async def interrupt(self, conn: Any, task: "asyncio.Future[Any]") -> None:
        """Abort the command running as ``task`` on ``conn``."""
        ...


class AbstractDriver(abc.ABC):
    """
    Optional ABC helper for class-based drivers.

    Subclasses set ``name`` and ``paramstyle`` and implement the operations.
    """

    name: str
    paramstyle: ParamStyle

    @abc.abstractmethod
    async def fetch(self, conn: Any, sql: str, args: Any, *, timeout=None, token=None) -> ResultSet:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def stream(self, conn: Any, sql: str, args: Any, *, batch_size: int, timeout=None) -> AsyncIterator[ResultSet]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def execute(self, conn: Any, sql: str, args: Any, *, timeout=None, token=None) -> int:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def open_grid(self, conn: Any, sql: str, args: Any, *, timeout=None, token=None) -> GridCursor:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def interrupt(self, conn: Any, task: "asyncio.Future[Any]") -> None:  # pragma: no cover - interface only
        raise NotImplementedError


_registry: Dict[type, Driver] = {}


def register_driver(connection_type: type, driver: Driver) -> None:
    """Use ``driver`` for connections of ``connection_type`` (and subclasses)."""
    _registry[connection_type] = driver


def unregister_driver(connection_type: type) -> None:
    _registry.pop(connection_type, None)


def driver_for(conn: Any) -> Driver:
    """Pick the registered driver for ``conn`` by walking its type's MRO."""
    for klass in type(conn).__mro__:
        driver = _registry.get(klass)
        if driver is not None:
            return driver
    raise TypeError(
        f"No litemap driver registered for {type(conn).__module__}.{type(conn).__name__}"
    )


__all__ = [
    "AbstractDriver",
    "Driver",
    "GridCursor",
    "driver_for",
    "register_driver",
    "unregister_driver",
]
