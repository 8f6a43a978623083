"""
Mapping package for litemap.

Parameter binding (``@name`` -> driver placeholders), dynamic rows and the
materializer that turns result sets into scalars, models and objects.
"""

from litemap.mapping.materializer import (
    ResultSet,
    build_plan,
    convert_value,
    materialize,
    materialize_multi,
    split_columns,
)
from litemap.mapping.params import bind_parameters, compile_sql
from litemap.mapping.rows import Row

__all__ = [
    "ResultSet",
    "Row",
    "bind_parameters",
    "build_plan",
    "compile_sql",
    "convert_value",
    "materialize",
    "materialize_multi",
    "split_columns",
]
