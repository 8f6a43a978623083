"""
Exception hierarchy for litemap.

Driver errors (psycopg.Error, asyncpg.PostgresError) propagate unchanged;
the classes below cover failures that originate in the mapper itself.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class MapperError(Exception):
    """Base class for every error raised by litemap."""


class DataMappingError(MapperError, ValueError):
    """A column value could not be mapped onto the requested target."""

    def __init__(
        self,
        message: str,
        column: Optional[str] = None,
        value: Any = None,
        target: Optional[type] = None,
    ) -> None:
        super().__init__(message)
        self.column = column
        self.value = value
        self.target = target

    @classmethod
    def for_value(cls, column: str, value: Any, target: type) -> "DataMappingError":
        return cls(
            f"Error parsing column '{column}' ({column}={value!r} - {type(value).__name__}) "
            f"as {getattr(target, '__name__', target)}",
            column=column,
            value=value,
            target=target,
        )


class MultiMapError(MapperError, ValueError):
    """Multi-mapping could not locate a split column."""

    def __init__(self, split_on: str, columns: Sequence[str]) -> None:
        super().__init__(
            "When using the multi-mapping APIs ensure you set the split_on param "
            f"if you have keys other than 'id' (split_on={split_on!r}, "
            f"columns={list(columns)!r})"
        )
        self.split_on = split_on
        self.columns = list(columns)


class NoRowsError(MapperError, LookupError):
    """A single/first query returned no rows."""

    def __init__(self) -> None:
        super().__init__("Sequence contains no elements")


class MultipleRowsError(MapperError, LookupError):
    """A single query returned more than one row."""

    def __init__(self) -> None:
        super().__init__("Sequence contains more than one element")


class GridConsumedError(MapperError, RuntimeError):
    """A GridReader was read past its last result set, or after closing."""


class UnsupportedOperationError(MapperError, NotImplementedError):
    """The selected driver cannot perform the requested operation."""


class CommandCancelledError(MapperError):
    """
    A command was interrupted by its CancellationToken.

    The driver-level exception that ended the command (for psycopg usually
    ``psycopg.errors.QueryCanceled``) is available as ``__cause__`` and as
    ``inner``.
    """

    def __init__(self, message: str = "The command was cancelled") -> None:
        super().__init__(message)

    @property
    def inner(self) -> Optional[BaseException]:
        return self.__cause__


__all__ = [
    "CommandCancelledError",
    "DataMappingError",
    "GridConsumedError",
    "MapperError",
    "MultiMapError",
    "MultipleRowsError",
    "NoRowsError",
    "UnsupportedOperationError",
]
