"""
Blocking wrappers around the async query surface.

Handy for scripts and the CLI. They start their own event loop, so they
refuse to run inside one; await the ``*_async`` functions there instead.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, List, TypeVar

from litemap.command import CommandLike
from litemap.query import execute_async, execute_scalar_async, query_async

T = TypeVar("T")


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run ``coro`` to completion on a fresh event loop.

    Raises
    ------
    RuntimeError
        When called from an async context (a loop is already running).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    coro.close()
    raise RuntimeError(
        "litemap blocking helpers cannot be called from an async context; "
        "await the *_async variant instead"
    )


async def _collect(source: Any, command: CommandLike, param: Any, target: Any, options: dict) -> List[Any]:
    result = await query_async(source, command, param, target, **options)
    if isinstance(result, list):
        return result
    return [item async for item in result]


def query(source: Any, command: CommandLike, param: Any = None, target: Any = None, **options: Any) -> List[Any]:
    """Blocking ``query_async``; unbuffered commands are drained into a list."""
    return run_sync(_collect(source, command, param, target, options))


def execute(source: Any, command: CommandLike, param: Any = None, **options: Any) -> int:
    return run_sync(execute_async(source, command, param, **options))


def execute_scalar(source: Any, command: CommandLike, param: Any = None, target: Any = None, **options: Any) -> Any:
    return run_sync(execute_scalar_async(source, command, param, target, **options))


__all__ = ["execute", "execute_scalar", "query", "run_sync"]
