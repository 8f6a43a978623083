"""
Parameter binding for litemap.

SQL text references parameters as ``@name``. Before a command reaches a
driver the references are rewritten to the driver's placeholder style:

- ``pyformat`` (psycopg): ``@name`` -> ``%(name)s``, arguments as a dict.
- ``numeric`` (asyncpg): ``@name`` -> ``$1``, arguments as a list.

Only names present in the parameter bag are rewritten, so local variables
or operators that happen to start with ``@`` survive untouched. String
literals, quoted identifiers, comments and dollar-quoted bodies are skipped.
Sequence values expand to a parenthesized list of placeholders so that
``where id in @ids`` works with ``{"ids": [1, 2, 3]}``.
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel

from litemap.mapping.cache import LruCache

ParamStyle = Literal["pyformat", "numeric"]

_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_DOLLAR_TAG = re.compile(r"\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$")
_EXPANDABLE = (list, tuple, set, frozenset)
_EMPTY_LIST_SQL = "(SELECT NULL WHERE 1 = 0)"

_compiled_cache: LruCache[Tuple[Any, ...], "CompiledSql"] = LruCache()


@dataclass(frozen=True)
class Binding:
    """Placeholder slot: the argument key and where its value comes from."""

    key: str
    name: str
    item: Optional[int] = None


@dataclass(frozen=True)
class CompiledSql:
    sql: str
    style: ParamStyle
    bindings: Tuple[Binding, ...]

    def arguments(self, params: Mapping[str, Any]) -> Any:
        """Build driver arguments for this statement from a parameter dict."""
        if not self.bindings:
            return None
        values = [
            _bound_value(params[binding.name], binding.item) for binding in self.bindings
        ]
        if self.style == "numeric":
            return values
        return {binding.key: value for binding, value in zip(self.bindings, values)}


def _bound_value(value: Any, item: Optional[int]) -> Any:
    if item is None:
        return value
    return list(value)[item]


def bind_parameters(obj: Any) -> Dict[str, Any]:
    """
    Turn a parameter bag into a name -> value dict.

    Accepts None, mappings, pydantic models, dataclass instances, named
    tuples and plain objects (their public instance attributes).
    """
    if obj is None:
        return {}
    if isinstance(obj, Mapping):
        return dict(obj)
    if isinstance(obj, BaseModel):
        return obj.model_dump()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if isinstance(obj, tuple) and hasattr(obj, "_asdict"):
        return dict(obj._asdict())
    if hasattr(obj, "__dict__") and not isinstance(obj, type):
        return {key: value for key, value in vars(obj).items() if not key.startswith("_")}
    raise TypeError(f"Cannot bind parameters from {type(obj).__name__}")


def _tokens(sql: str) -> Iterator[Tuple[str, str]]:
    """
    Split ``sql`` into ``(kind, text)`` tokens.

    ``param`` tokens carry a bare parameter name. ``opaque`` tokens are
    string literals, quoted identifiers, comments, dollar-quoted bodies and
    ``@@name`` references. Everything else is emitted one ``char`` at a time.
    """
    i, n = 0, len(sql)
    while i < n:
        c = sql[i]
        kind = "opaque"
        if c in ("'", '"'):
            k = i + 1
            while k < n:
                if sql[k] == c:
                    if k + 1 < n and sql[k + 1] == c:
                        k += 2
                        continue
                    break
                k += 1
            end = min(k + 1, n)
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            end = n if end == -1 else end
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = n if end == -1 else end + 2
        elif c == "$" and (m := _DOLLAR_TAG.match(sql, i)) and not _is_word_char(sql, i - 1):
            tag = m.group(0)
            end = sql.find(tag, m.end())
            end = n if end == -1 else end + len(tag)
        elif c == "@" and sql.startswith("@@", i):
            m = _NAME.match(sql, i + 2)
            end = m.end() if m else i + 2
        elif c == "@" and (m := _NAME.match(sql, i + 1)) and not _is_word_char(sql, i - 1):
            yield "param", m.group(0)
            i = m.end()
            continue
        else:
            kind, end = "char", i + 1
        yield kind, sql[i:end]
        i = end


def _scan(sql: str, on_param: Callable[[str], Optional[str]], escape_percent: bool) -> str:
    """
    Walk ``sql`` and substitute parameter references.

    ``on_param`` receives each ``@name`` outside quoted/commented text and
    returns the replacement, or None to leave the reference as written.
    """
    out: List[str] = []
    emit = (lambda text: out.append(text.replace("%", "%%"))) if escape_percent else out.append
    for kind, text in _tokens(sql):
        if kind == "param":
            replacement = on_param(text)
            if replacement is not None:
                out.append(replacement)
                continue
            text = "@" + text
        emit(text)
    return "".join(out)


def split_statements(sql: str) -> List[str]:
    """
    Split a batch at top-level semicolons.

    Semicolons inside literals, comments and dollar-quoted bodies do not
    split. Blank statements are dropped.
    """
    statements: List[str] = []
    current: List[str] = []
    for kind, text in _tokens(sql):
        if kind == "char" and text == ";":
            statements.append("".join(current))
            current = []
        else:
            current.append("@" + text if kind == "param" else text)
    statements.append("".join(current))
    return [statement.strip() for statement in statements if statement.strip()]


def _is_word_char(sql: str, index: int) -> bool:
    if index < 0:
        return False
    ch = sql[index]
    return ch.isalnum() or ch == "_"


def _placeholder(style: ParamStyle, key: str, position: int) -> str:
    return f"%({key})s" if style == "pyformat" else f"${position}"


def _shape(value: Any) -> Optional[int]:
    return len(value) if isinstance(value, _EXPANDABLE) else None


def compile_sql(
    sql: str, params: Mapping[str, Any], style: ParamStyle, use_cache: bool = True
) -> CompiledSql:
    """
    Rewrite ``@name`` references in ``sql`` for the given placeholder style.

    Parameter names are matched case-sensitively against ``params``. The
    result depends on which names exist and on the length of sequence
    values, so those form the cache key.
    """
    shapes = tuple(sorted((name, _shape(value)) for name, value in params.items()))
    cache_key = (sql, style, shapes)
    if use_cache:
        cached = _compiled_cache.get(cache_key)
        if cached is not None:
            return cached

    shape_of = dict(shapes)
    bindings: List[Binding] = []
    numeric_slots: Dict[str, str] = {}

    def on_param(name: str) -> Optional[str]:
        if name not in shape_of:
            return None
        length = shape_of[name]
        if length is None:
            if style == "numeric" and name in numeric_slots:
                return numeric_slots[name]
            bindings.append(Binding(key=name, name=name))
            text = _placeholder(style, name, len(bindings))
            numeric_slots[name] = text
            return text
        if length == 0:
            return _EMPTY_LIST_SQL
        parts = []
        for item in range(length):
            # "[" cannot appear in a parameter name, so expanded keys never collide.
            key = f"{name}[{item}]"
            bindings.append(Binding(key=key, name=name, item=item))
            parts.append(_placeholder(style, key, len(bindings)))
        return "(" + ", ".join(parts) + ")"

    rewritten = _scan(sql, on_param, escape_percent=style == "pyformat")
    if not bindings:
        # No arguments are sent, so drivers must not see escaped percent signs.
        compiled = CompiledSql(sql=_scan(sql, on_param, escape_percent=False), style=style, bindings=())
    else:
        compiled = CompiledSql(sql=rewritten, style=style, bindings=tuple(bindings))

    if use_cache:
        _compiled_cache.put(cache_key, compiled)
    return compiled


def clear_compiled_cache() -> None:
    _compiled_cache.clear()


def compiled_cache_size() -> int:
    return len(_compiled_cache)


__all__ = [
    "Binding",
    "CompiledSql",
    "ParamStyle",
    "bind_parameters",
    "clear_compiled_cache",
    "compile_sql",
    "compiled_cache_size",
    "split_statements",
]
