from __future__ import annotations

import json
import logging

import pytest

from litemap.utils.logging import ConsoleFormatter, _json_formatter, configure_logging

EXPECTED_ROWS = 10
EXPECTED_BATCH_SIZE = 1000


def _record() -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.rows = EXPECTED_ROWS
    record.driver = "psycopg"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["rows"] == EXPECTED_ROWS
    assert payload["driver"] == "psycopg"
    assert "lineno" not in payload


def test_json_formatter_stringifies_unknown_values() -> None:
    record = _record()
    record.batch_size = EXPECTED_BATCH_SIZE
    record.sql = object()

    payload = json.loads(_json_formatter(record))

    assert payload["batch_size"] == EXPECTED_BATCH_SIZE
    assert payload["sql"].startswith("<object object")


def test_console_formatter_appends_command_fields() -> None:
    record = _record()
    record.command = "query"
    record.rows = EXPECTED_ROWS
    record.sql = "select 1"

    line = ConsoleFormatter(fmt="%(levelname)s %(message)s").format(record)

    assert line == f"INFO hello | command=query rows={EXPECTED_ROWS}"
    assert ConsoleFormatter(fmt="%(message)s").format(_record()) == "hello"


@pytest.mark.asyncio
async def test_commands_log_structured_fields(caplog) -> None:
    from litemap.drivers.abstract import register_driver, unregister_driver
    from litemap.query import query_async
    from tests.unit.fakes import FakeConnection, FakeDriver, result

    register_driver(FakeConnection, FakeDriver())
    try:
        with caplog.at_level(logging.DEBUG, logger="litemap.query"):
            await query_async(FakeConnection([result(["v"], [1], [2])]), "select v", target=int)
    finally:
        unregister_driver(FakeConnection)

    [entry] = [r for r in caplog.records if r.name == "litemap.query"]
    assert entry.command == "query"
    assert entry.driver == "fake"
    assert entry.rows == 2
    assert entry.duration_ms >= 0


def test_configure_logging_without_force_keeps_existing_handlers() -> None:
    root = logging.getLogger()
    sentinel = logging.NullHandler()
    previous = root.handlers[:]
    root.handlers = [sentinel]
    try:
        configure_logging(level="DEBUG", force=False)
        assert root.handlers == [sentinel]
    finally:
        root.handlers = previous
