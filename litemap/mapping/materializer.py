"""
Row materialization: turn driver result sets into Python values.

A mapping plan is built once per (target type, column layout) and cached.
Supported targets:

- ``None`` or ``Row``: dynamic rows (attribute / name / position access).
- Scalars (``str``, ``int``, ``float``, ``bool``, ``Decimal``, ``bytes``,
  date/time types, ``UUID``, enums, ``Optional[...]`` of those): the first
  column of each row, converted to the target.
- Pydantic models: matched columns are validated by the model.
- Dataclasses: matched columns become constructor arguments.
- Plain classes: instantiated without arguments, matched columns assigned.

Column names match members exactly first, then case-insensitively. Columns
without a matching member are ignored.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import enum
import typing
import uuid
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from litemap.config import get_settings
from litemap.errors import DataMappingError, MultiMapError
from litemap.mapping.cache import LruCache
from litemap.mapping.rows import Row, RowSchema

Plan = Callable[[Sequence[Any]], Any]

SCALAR_TYPES: Tuple[type, ...] = (
    str,
    int,
    float,
    bool,
    Decimal,
    bytes,
    bytearray,
    dt.datetime,
    dt.date,
    dt.time,
    dt.timedelta,
    uuid.UUID,
)

_LAX_CONFIG = ConfigDict(coerce_numbers_to_str=True, arbitrary_types_allowed=True)

_plan_cache: LruCache[Tuple[Any, ...], Plan] = LruCache()


@dataclass(frozen=True)
class ResultSet:
    """One tabular result: ordered column names plus row tuples."""

    columns: Tuple[str, ...]
    rows: List[Tuple[Any, ...]]

    def __len__(self) -> int:
        return len(self.rows)


def _unwrap_optional(target: Any) -> Any:
    if typing.get_origin(target) is typing.Union:
        args = [arg for arg in typing.get_args(target) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return target


def is_scalar_target(target: Any) -> bool:
    target = _unwrap_optional(target)
    return isinstance(target, type) and (
        issubclass(target, SCALAR_TYPES) or issubclass(target, enum.Enum)
    )


def _has_own_config(target: Any) -> bool:
    return isinstance(target, type) and (
        issubclass(target, BaseModel)
        or dataclasses.is_dataclass(target)
        or typing.is_typeddict(target)
    )


@lru_cache(maxsize=512)
def _adapter(target: Any) -> TypeAdapter:
    # Models and dataclasses carry their own config; TypeAdapter rejects a second one.
    return TypeAdapter(target, config=None if _has_own_config(target) else _LAX_CONFIG)


def convert_value(value: Any, target: Any, column: str = "?") -> Any:
    """
    Convert a single database value to ``target``.

    NULL stays None. Conversion is pydantic's lax-mode validation, so
    ``"42"`` becomes ``42``, ``"f"`` becomes ``False`` and an ISO string
    becomes a date; ``Decimal("1.5")`` is not silently truncated to an int.
    """
    if value is None or target is None or target is Any or target is object:
        return value
    if isinstance(target, (str, typing.ForwardRef)):
        return value
    try:
        return _adapter(target).validate_python(value)
    except ValidationError as exc:
        raise DataMappingError.for_value(column, value, target) from exc


def _normalize(name: str, underscores: bool) -> str:
    name = name.lower()
    return name.replace("_", "") if underscores else name


class _MemberIndex:
    """Resolves column names onto a set of member names."""

    def __init__(self, members: Sequence[str], underscores: bool) -> None:
        self._exact = {name: name for name in members}
        self._loose: Dict[str, str] = {}
        self._underscores = underscores
        for name in members:
            self._loose.setdefault(_normalize(name, underscores), name)

    def resolve(self, column: str) -> Optional[str]:
        if column in self._exact:
            return self._exact[column]
        return self._loose.get(_normalize(column, self._underscores))


def _type_hints(target: type) -> Dict[str, Any]:
    try:
        return typing.get_type_hints(target)
    except (NameError, TypeError):
        hints: Dict[str, Any] = {}
        for klass in reversed(target.__mro__):
            hints.update(getattr(klass, "__annotations__", {}))
        return hints


def _match(
    columns: Sequence[str], members: Sequence[str], underscores: bool
) -> List[Tuple[int, str]]:
    """Pair column positions with member names; first matching column wins."""
    index = _MemberIndex(members, underscores)
    matched: List[Tuple[int, str]] = []
    seen = set()
    for position, column in enumerate(columns):
        member = index.resolve(column)
        if member is not None and member not in seen:
            seen.add(member)
            matched.append((position, member))
    return matched


def _row_plan(columns: Sequence[str]) -> Plan:
    schema = RowSchema(columns)
    return lambda values: Row(schema, values)


def _scalar_plan(target: Any, columns: Sequence[str]) -> Plan:
    if not columns:
        raise DataMappingError(f"No columns were selected to map onto {target!r}", target=target)
    column = columns[0]
    return lambda values: convert_value(values[0], target, column)


def _model_plan(target: type[BaseModel], columns: Sequence[str], underscores: bool) -> Plan:
    # Both the field name and its alias may match a column; data is keyed by alias.
    keys: Dict[str, str] = {}
    for name, info in target.model_fields.items():
        key = info.alias or name
        keys[name] = key
        keys.setdefault(key, key)
    matched: List[Tuple[int, str]] = []
    for pos, member in _match(columns, list(keys), underscores):
        if keys[member] not in {key for _, key in matched}:
            matched.append((pos, keys[member]))

    def build(values: Sequence[Any]) -> BaseModel:
        data = {key: values[pos] for pos, key in matched}
        try:
            return target.model_validate(data)
        except ValidationError as exc:
            raise DataMappingError(
                f"Cannot map row onto {target.__name__}: {exc}", target=target
            ) from exc

    return build


def _dataclass_plan(target: type, columns: Sequence[str], underscores: bool) -> Plan:
    hints = _type_hints(target)
    fields = {f.name: f for f in dataclasses.fields(target)}
    matched = _match(columns, list(fields), underscores)
    matched_names = {member for _, member in matched}
    missing = [
        f.name
        for f in fields.values()
        if f.init
        and f.name not in matched_names
        and f.default is dataclasses.MISSING
        and f.default_factory is dataclasses.MISSING
    ]
    if missing:
        raise DataMappingError(
            f"Cannot map onto {target.__name__}: no column for required field(s) {missing}; "
            f"columns are {list(columns)}",
            target=target,
        )
    init_args = [(pos, name, hints.get(name, Any)) for pos, name in matched if fields[name].init]
    late_args = [(pos, name, hints.get(name, Any)) for pos, name in matched if not fields[name].init]

    def build(values: Sequence[Any]) -> Any:
        kwargs = {
            name: convert_value(values[pos], hint, columns[pos]) for pos, name, hint in init_args
        }
        instance = target(**kwargs)
        for pos, name, hint in late_args:
            object.__setattr__(instance, name, convert_value(values[pos], hint, columns[pos]))
        return instance

    return build


def _settable_members(target: type, hints: Dict[str, Any], instance: Any) -> List[str]:
    """Annotated names, settable properties and the attributes ``__init__`` set on ``instance``."""
    members = [name for name in hints if not name.startswith("_")]
    for klass in target.__mro__:
        for name, attr in vars(klass).items():
            if isinstance(attr, property) and attr.fset is not None and name not in members:
                members.append(name)
    if hasattr(instance, "__dict__"):
        members.extend(name for name in vars(instance) if not name.startswith("_") and name not in members)
    return members


def _object_plan(target: type, columns: Sequence[str], underscores: bool) -> Plan:
    hints = _type_hints(target)
    # Members are resolved from the first instance built.
    matched: Optional[List[Tuple[int, str, Any]]] = None

    def build(values: Sequence[Any]) -> Any:
        nonlocal matched
        try:
            instance = target()
        except TypeError as exc:
            raise DataMappingError(
                f"{target.__name__} needs a constructor without required arguments "
                "to be used as a mapping target",
                target=target,
            ) from exc
        if matched is None:
            members = _settable_members(target, hints, instance)
            matched = [(pos, name, hints.get(name, Any)) for pos, name in _match(columns, members, underscores)]
        for pos, name, hint in matched:
            setattr(instance, name, convert_value(values[pos], hint, columns[pos]))
        return instance

    return build


def build_plan(target: Any, columns: Sequence[str], use_cache: bool = True) -> Plan:
    """Return a callable mapping one row tuple (for ``columns``) onto ``target``."""
    underscores = get_settings().match_names_with_underscores
    columns = tuple(columns)
    cache_key = (target, columns, underscores)
    if use_cache:
        cached = _plan_cache.get(cache_key)
        if cached is not None:
            return cached

    if target is None or target is Row:
        plan = _row_plan(columns)
    elif is_scalar_target(target):
        plan = _scalar_plan(target, columns)
    elif isinstance(target, type) and issubclass(target, BaseModel):
        plan = _model_plan(target, columns, underscores)
    elif isinstance(target, type) and dataclasses.is_dataclass(target):
        plan = _dataclass_plan(target, columns, underscores)
    elif isinstance(target, type):
        plan = _object_plan(target, columns, underscores)
    else:
        raise TypeError(f"Unsupported mapping target: {target!r}")

    if use_cache:
        _plan_cache.put(cache_key, plan)
    return plan


def materialize(result: ResultSet, target: Any = None, use_cache: bool = True) -> List[Any]:
    """Map every row of ``result`` onto ``target``."""
    if not result.rows:
        return []
    plan = build_plan(target, result.columns, use_cache)
    return [plan(row) for row in result.rows]


def split_columns(columns: Sequence[str], count: int, split_on: str = "id") -> List[Tuple[int, int]]:
    """
    Partition ``columns`` into ``count`` consecutive segments.

    Every segment after the first starts at the next column (left to right)
    named by ``split_on``. ``split_on`` may list one name per boundary,
    separated by commas; a single name applies to every boundary.
    """
    names = [name.strip() for name in split_on.split(",") if name.strip()]
    if not names or (len(names) > 1 and len(names) != count - 1):
        raise MultiMapError(split_on, columns)
    starts = [0]
    for boundary in range(1, count):
        wanted = (names[boundary - 1] if len(names) > 1 else names[0]).lower()
        found = next(
            (pos for pos in range(starts[-1] + 1, len(columns)) if columns[pos].lower() == wanted),
            None,
        )
        if found is None:
            raise MultiMapError(split_on, columns)
        starts.append(found)
    ends = starts[1:] + [len(columns)]
    return list(zip(starts, ends))


def materialize_multi(
    result: ResultSet,
    types: Sequence[Any],
    map_fn: Callable[..., Any],
    split_on: str = "id",
    use_cache: bool = True,
) -> List[Any]:
    """
    Map each row onto several targets and combine them with ``map_fn``.

    ``map_fn`` receives one object per entry of ``types``, positionally.
    Objects after the first are None when their leading column is NULL.
    """
    if len(types) < 2:
        raise ValueError("Multi-mapping needs at least two types")
    if not result.rows:
        return []
    segments = split_columns(result.columns, len(types), split_on)
    plans = [
        build_plan(target, result.columns[start:end], use_cache)
        for target, (start, end) in zip(types, segments)
    ]
    nullable = [index > 0 and not is_scalar_target(target) for index, target in enumerate(types)]

    output = []
    for row in result.rows:
        objects = []
        for plan, (start, end), may_be_null in zip(plans, segments, nullable):
            values = row[start:end]
            objects.append(None if may_be_null and values[0] is None else plan(values))
        output.append(map_fn(*objects))
    return output


def clear_plan_cache() -> None:
    _plan_cache.clear()
    _adapter.cache_clear()


def plan_cache_size() -> int:
    return len(_plan_cache)


__all__ = [
    "ResultSet",
    "SCALAR_TYPES",
    "build_plan",
    "clear_plan_cache",
    "convert_value",
    "is_scalar_target",
    "materialize",
    "materialize_multi",
    "plan_cache_size",
    "split_columns",
]
