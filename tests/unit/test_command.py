from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from litemap import command as command_module
from litemap.command import (
    CancellationToken,
    CommandDefinition,
    CommandFlags,
    as_command,
    run_cancellable,
)
from litemap.errors import CommandCancelledError

TIMEOUT_SECONDS = 2.5


class _DriverError(Exception):
    pass


def test_default_command_is_buffered_and_cached():
    cmd = CommandDefinition("select 1")
    assert cmd.buffered is True
    assert cmd.use_cache is True


def test_flags_switch_buffering_and_cache_off():
    cmd = CommandDefinition("select 1", flags=CommandFlags.NONE | CommandFlags.NO_CACHE)
    assert cmd.buffered is False
    assert cmd.use_cache is False


def test_effective_timeout_prefers_command_value(monkeypatch):
    monkeypatch.setattr(
        command_module, "get_settings", lambda: SimpleNamespace(db_statement_timeout_ms=4000)
    )
    assert CommandDefinition("select 1", command_timeout=TIMEOUT_SECONDS).effective_timeout() == TIMEOUT_SECONDS
    assert CommandDefinition("select 1", command_timeout=0).effective_timeout() is None
    assert CommandDefinition("select 1").effective_timeout() == 4.0


def test_effective_timeout_disabled_by_default(monkeypatch):
    monkeypatch.setattr(
        command_module, "get_settings", lambda: SimpleNamespace(db_statement_timeout_ms=0)
    )
    assert CommandDefinition("select 1").effective_timeout() is None


def test_as_command_wraps_strings_and_rejects_mixed_arguments():
    cmd = as_command("select @x", {"x": 1}, flags=CommandFlags.NONE, cancellation=None)
    assert cmd.parameters == {"x": 1}
    assert cmd.flags == CommandFlags.NONE
    assert as_command(cmd) is cmd
    with pytest.raises(TypeError):
        as_command(cmd, {"x": 2})


def test_token_cancel_after_elapses():
    token = CancellationToken.cancel_after(0)
    assert token.cancelled is True
    assert CancellationToken().cancelled is False


@pytest.mark.asyncio
async def test_token_wait_returns_after_delay():
    token = CancellationToken.cancel_after(0.05)
    await asyncio.wait_for(token.wait(), timeout=1)
    assert token.cancelled


@pytest.mark.asyncio
async def test_run_cancellable_without_token_just_awaits():
    async def work():
        return 42

    async def interrupt(task):
        raise AssertionError("should not interrupt")

    assert await run_cancellable(work(), None, interrupt) == 42
    assert await run_cancellable(work(), CancellationToken(), interrupt) == 42


@pytest.mark.asyncio
async def test_pre_cancelled_token_never_starts_the_command():
    started = False

    async def work():
        nonlocal started
        started = True

    token = CancellationToken()
    token.cancel()

    async def interrupt(task):
        raise AssertionError("should not interrupt")

    with pytest.raises(CommandCancelledError):
        await run_cancellable(work(), token, interrupt)
    assert started is False


@pytest.mark.asyncio
async def test_interrupted_command_surfaces_driver_error_as_cause():
    stop = asyncio.Event()

    async def work():
        await stop.wait()
        raise _DriverError("canceling statement due to user request")

    async def interrupt(task):
        stop.set()

    token = CancellationToken.cancel_after(0.05)
    with pytest.raises(CommandCancelledError) as excinfo:
        await asyncio.wait_for(run_cancellable(work(), token, interrupt), timeout=1)
    assert isinstance(excinfo.value.inner, _DriverError)


@pytest.mark.asyncio
async def test_driver_errors_before_cancellation_propagate_unchanged():
    async def work():
        raise _DriverError("syntax error")

    async def interrupt(task):
        raise AssertionError("should not interrupt")

    with pytest.raises(_DriverError):
        await run_cancellable(work(), CancellationToken.cancel_after(5), interrupt)
