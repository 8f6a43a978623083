"""
Command description and cooperative cancellation for litemap.

A CommandDefinition bundles everything needed to run one SQL batch: the text,
its parameters, behaviour flags, an optional timeout and an optional
CancellationToken. Public query functions accept either a bare SQL string or
a CommandDefinition.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from litemap.config import get_settings
from litemap.errors import CommandCancelledError
from litemap.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class CommandFlags(enum.Flag):
    """Behaviour switches for a command."""

    NONE = 0
    # Materialize the full result before returning; otherwise rows stream.
    BUFFERED = enum.auto()
    # Skip the compiled-SQL and mapping-plan caches.
    NO_CACHE = enum.auto()


class CancellationToken:
    """
    Cooperative cancellation signal for a running command.

    A token is either cancelled explicitly with ``cancel()`` or becomes
    cancelled once the delay given to ``cancel_after`` has elapsed. Tokens can
    be created outside a running event loop.

    Example
    -------
        token = CancellationToken.cancel_after(5)
        await query_async(conn, CommandDefinition("select pg_sleep(10)", cancellation=token))
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._deadline: Optional[float] = None

    @classmethod
    def cancel_after(cls, seconds: float) -> "CancellationToken":
        token = cls()
        token._deadline = time.monotonic() + seconds
        return token

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        if self._deadline is None:
            await self._event.wait()
            return
        remaining = self._deadline - time.monotonic()
        if remaining > 0:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass
        self._event.set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"


@dataclass(frozen=True)
class CommandDefinition:
    """
    Everything needed to run a single SQL batch.

    Attributes
    ----------
    sql : str
        SQL text; parameters are referenced as ``@name``.
    parameters : Any
        Parameter bag (mapping, dataclass, pydantic model or plain object),
        or a sequence of bags for ``execute_async``.
    flags : CommandFlags
        Behaviour flags, BUFFERED by default.
    command_timeout : float | None
        Seconds before the server aborts the command. None falls back to
        ``DB_STATEMENT_TIMEOUT_MS``; 0 disables the timeout.
    cancellation : CancellationToken | None
        Token that interrupts the command when cancelled.
    """

    sql: str
    parameters: Any = None
    flags: CommandFlags = CommandFlags.BUFFERED
    command_timeout: Optional[float] = None
    cancellation: Optional[CancellationToken] = None

    @property
    def buffered(self) -> bool:
        return CommandFlags.BUFFERED in self.flags

    @property
    def use_cache(self) -> bool:
        return CommandFlags.NO_CACHE not in self.flags

    def effective_timeout(self) -> Optional[float]:
        """Timeout in seconds to apply, or None when no timeout applies."""
        if self.command_timeout is not None:
            return self.command_timeout or None
        timeout_ms = get_settings().db_statement_timeout_ms
        return timeout_ms / 1000.0 if timeout_ms > 0 else None

    def with_parameters(self, parameters: Any) -> "CommandDefinition":
        return replace(self, parameters=parameters)


CommandLike = Union[str, CommandDefinition]


def as_command(command: CommandLike, param: Any = None, **options: Any) -> CommandDefinition:
    """
    Normalize a SQL string or CommandDefinition into a CommandDefinition.

    ``param`` and keyword options only apply when ``command`` is a string;
    passing them alongside a CommandDefinition is an error.
    """
    if isinstance(command, CommandDefinition):
        if param is not None or options:
            raise TypeError("Pass parameters and options inside the CommandDefinition")
        return command
    options = {key: value for key, value in options.items() if value is not None}
    return CommandDefinition(sql=command, parameters=param, **options)


async def run_cancellable(
    awaitable: Awaitable[T],
    token: Optional[CancellationToken],
    interrupt: Callable[["asyncio.Future[T]"], Awaitable[None]],
) -> T:
    """
    Await a driver call, interrupting it when ``token`` fires first.

    When the token wins the race, ``interrupt`` is invoked with the pending
    driver task so the driver can abort the command server-side. Whatever
    the driver then raises is re-raised wrapped in CommandCancelledError.
    """
    if token is None:
        return await awaitable
    if token.cancelled:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise CommandCancelledError("The command was cancelled before it started")

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    log.debug("Cancellation requested; interrupting command")
    await interrupt(task)
    try:
        return await task
    except (Exception, asyncio.CancelledError) as exc:
        raise CommandCancelledError() from exc


__all__ = [
    "CancellationToken",
    "CommandDefinition",
    "CommandFlags",
    "CommandLike",
    "as_command",
    "run_cancellable",
]
