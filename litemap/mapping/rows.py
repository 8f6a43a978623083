"""
Dynamic row type returned when a query is issued without a target type.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict, Iterator, Sequence, Tuple, Union


class RowSchema:
    """Column layout shared by every Row of one result set."""

    __slots__ = ("columns", "index")

    def __init__(self, columns: Sequence[str]) -> None:
        self.columns: Tuple[str, ...] = tuple(columns)
        self.index: Dict[str, int] = {}
        for position, name in enumerate(self.columns):
            # Duplicate column names resolve to the first occurrence.
            self.index.setdefault(name, position)

    def __reduce__(self) -> Tuple[Any, ...]:
        return (RowSchema, (self.columns,))


class Row(Mapping):
    """
    Read-only record with attribute, name and position access.

        row = (await query_async(conn, 'select 1 as "Id", \\'abc\\' as "Value"'))[0]
        row.Value == row["Value"] == row[1] == "abc"

    Iterating a Row yields its (unique) column names, as for any mapping.
    """

    __slots__ = ("_schema", "_values")

    def __init__(self, schema: RowSchema, values: Sequence[Any]) -> None:
        object.__setattr__(self, "_schema", schema)
        object.__setattr__(self, "_values", tuple(values))

    @classmethod
    def from_pairs(cls, columns: Sequence[str], values: Sequence[Any]) -> "Row":
        return cls(RowSchema(columns), values)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            # Slots not set yet (copy, unpickling) must not recurse into column lookup.
            raise AttributeError(name)
        try:
            return self._values[self._schema.index[name]]
        except KeyError:
            raise AttributeError(
                f"Row has no column {name!r}; columns are {list(self._schema.columns)!r}"
            ) from None

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Row is read-only")

    def __reduce__(self) -> Tuple[Any, ...]:
        return (Row, (self._schema, self._values))

    def __getitem__(self, key: Union[str, int]) -> Any:
        if isinstance(key, int):
            return self._values[key]
        return self._values[self._schema.index[key]]

    def __iter__(self) -> Iterator[str]:
        return iter(self._schema.index)

    def __len__(self) -> int:
        return len(self._schema.index)

    def __contains__(self, key: object) -> bool:
        return key in self._schema.index

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Row):
            return self._schema.columns == other._schema.columns and self._values == other._values
        if isinstance(other, Mapping):
            return dict(self.items()) == dict(other.items())
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._schema.columns, self._values))

    def __repr__(self) -> str:
        fields = ", ".join(f"{name} = {self[name]!r}" for name in self)
        return "{Row " + fields + "}"

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | {c for c in self._schema.index if c.isidentifier()})

    @property
    def columns(self) -> Tuple[str, ...]:
        return self._schema.columns

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.items())


__all__ = ["Row", "RowSchema"]
