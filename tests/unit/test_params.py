from __future__ import annotations

from collections import namedtuple
from dataclasses import dataclass
from types import SimpleNamespace

import pytest
from pydantic import BaseModel

from litemap.mapping import params as params_module
from litemap.mapping.params import bind_parameters, compile_sql, split_statements


@dataclass
class _Lookup:
    id: int
    name: str


class _LookupModel(BaseModel):
    id: int
    name: str


_LookupTuple = namedtuple("_LookupTuple", ["id", "name"])


class TestBindParameters:
    def test_none_binds_nothing(self):
        assert bind_parameters(None) == {}

    def test_mapping(self):
        assert bind_parameters({"txt": "def"}) == {"txt": "def"}

    @pytest.mark.parametrize(
        "bag",
        [
            _Lookup(id=1, name="abc"),
            _LookupModel(id=1, name="abc"),
            _LookupTuple(id=1, name="abc"),
            SimpleNamespace(id=1, name="abc"),
        ],
    )
    def test_structured_bags(self, bag):
        assert bind_parameters(bag) == {"id": 1, "name": "abc"}

    def test_private_attributes_are_skipped(self):
        bag = SimpleNamespace(id=1, _secret="x")
        assert bind_parameters(bag) == {"id": 1}

    def test_scalar_is_rejected(self):
        with pytest.raises(TypeError):
            bind_parameters(42)


class TestCompilePyformat:
    def test_rewrites_known_parameter(self):
        compiled = compile_sql(
            "select 'abc' as \"Value\" union all select @txt", {"txt": "def"}, "pyformat"
        )
        assert compiled.sql == "select 'abc' as \"Value\" union all select %(txt)s"
        assert compiled.arguments({"txt": "def"}) == {"txt": "def"}

    def test_unknown_names_are_left_alone(self):
        compiled = compile_sql("select @x, @y", {"x": 1}, "pyformat")
        assert compiled.sql == "select %(x)s, @y"

    def test_no_bindings_returns_text_verbatim(self):
        sql = "select '100%' as pct"
        compiled = compile_sql(sql, {}, "pyformat")
        assert compiled.sql == sql
        assert compiled.arguments({}) is None

    def test_percent_is_escaped_when_binding(self):
        compiled = compile_sql("select '100%', @x", {"x": 1}, "pyformat")
        assert compiled.sql == "select '100%%', %(x)s"

    @pytest.mark.parametrize(
        "sql",
        [
            "select '@x'",
            "select 'it''s @x'",
            'select 1 as "@x"',
            "select 1 -- @x\n",
            "select /* @x */ 1",
            "select $$ @x $$",
            "select $body$ @x $body$",
            "select @@x",
            "select a@x from t",
        ],
    )
    def test_references_in_quoted_or_commented_text_are_ignored(self, sql):
        compiled = compile_sql(sql, {"x": 1}, "pyformat")
        assert compiled.sql == sql
        assert compiled.bindings == ()

    def test_reference_after_comment_is_bound(self):
        compiled = compile_sql("select 1 -- note\n, @x", {"x": 1}, "pyformat")
        assert compiled.sql.endswith(", %(x)s")

    def test_list_expansion(self):
        compiled = compile_sql("select * from t where id in @ids", {"ids": [3, 4]}, "pyformat")
        assert compiled.sql == "select * from t where id in (%(ids[0])s, %(ids[1])s)"
        assert compiled.arguments({"ids": [3, 4]}) == {"ids[0]": 3, "ids[1]": 4}

    def test_expanded_keys_do_not_clash_with_similar_names(self):
        params = {"ids": [3, 4], "ids_1": 9}
        compiled = compile_sql("select @ids_1 where id in @ids", params, "pyformat")
        assert compiled.sql == "select %(ids_1)s where id in (%(ids[0])s, %(ids[1])s)"
        assert compiled.arguments(params) == {"ids_1": 9, "ids[0]": 3, "ids[1]": 4}

    def test_empty_list_matches_nothing(self):
        compiled = compile_sql("select * from t where id in @ids", {"ids": []}, "pyformat")
        assert compiled.sql == "select * from t where id in (SELECT NULL WHERE 1 = 0)"
        assert compiled.arguments({"ids": []}) is None


class TestCompileNumeric:
    def test_positions_follow_first_use(self):
        compiled = compile_sql("select @b, @a, @b", {"a": 1, "b": 2}, "numeric")
        assert compiled.sql == "select $1, $2, $1"
        assert compiled.arguments({"a": 1, "b": 2}) == [2, 1]

    def test_list_expansion_uses_fresh_positions(self):
        compiled = compile_sql("select @x where id in @ids", {"x": 0, "ids": (7, 8)}, "numeric")
        assert compiled.sql == "select $1 where id in ($2, $3)"
        assert compiled.arguments({"x": 0, "ids": (7, 8)}) == [0, 7, 8]

    def test_percent_is_not_escaped(self):
        compiled = compile_sql("select '5%', @x", {"x": 1}, "numeric")
        assert compiled.sql == "select '5%', $1"


class TestCompiledCache:
    def test_repeated_compiles_are_cached(self):
        first = compile_sql("select @x", {"x": 1}, "pyformat")
        second = compile_sql("select @x", {"x": 2}, "pyformat")
        assert first is second
        assert params_module.compiled_cache_size() == 1

    def test_list_length_is_part_of_the_key(self):
        two = compile_sql("select @ids", {"ids": [1, 2]}, "pyformat")
        three = compile_sql("select @ids", {"ids": [1, 2, 3]}, "pyformat")
        assert two.sql != three.sql

    def test_cache_can_be_bypassed(self):
        compile_sql("select @x", {"x": 1}, "pyformat", use_cache=False)
        assert params_module.compiled_cache_size() == 0


class TestSplitStatements:
    def test_splits_at_top_level_semicolons(self):
        assert split_statements("insert into t values (1); insert into t values (2);") == [
            "insert into t values (1)",
            "insert into t values (2)",
        ]

    @pytest.mark.parametrize(
        "sql",
        [
            "select 'a;b'",
            'select 1 as "x;y"',
            "select 1 -- trailing; comment",
            "select 1 /* a; b */",
            "do $body$ begin perform 1; end $body$",
        ],
    )
    def test_quoted_semicolons_do_not_split(self, sql):
        assert split_statements(sql) == [sql]

    def test_blank_statements_are_dropped(self):
        assert split_statements(" ; select 1 ;; ") == ["select 1"]
