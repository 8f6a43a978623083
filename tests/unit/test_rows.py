from __future__ import annotations

import copy
import pickle

import pytest

from litemap.mapping.rows import Row

EXPECTED_LENGTH = 2


def _row() -> Row:
    return Row.from_pairs(["Id", "Value"], [1, "abc"])


def test_attribute_name_and_position_access_agree():
    row = _row()
    assert row.Value == row["Value"] == row[1] == "abc"
    assert row.Id == row[0] == 1


def test_row_is_a_read_only_mapping():
    row = _row()
    assert list(row) == ["Id", "Value"]
    assert len(row) == EXPECTED_LENGTH
    assert dict(row) == {"Id": 1, "Value": "abc"}
    assert "Value" in row
    assert row.get("Missing") is None
    with pytest.raises(AttributeError):
        row.Value = "changed"


def test_missing_attribute_lists_columns():
    with pytest.raises(AttributeError, match="Value"):
        _ = _row().value


def test_duplicate_columns_resolve_to_first_occurrence():
    row = Row.from_pairs(["id", "name", "id", "name"], [1, "abc", 2, "def"])
    assert row.id == 1
    assert row[2] == 2
    assert row.to_dict() == {"id": 1, "name": "abc"}
    assert row.columns == ("id", "name", "id", "name")


def test_equality_and_repr():
    assert _row() == _row()
    assert _row() == {"Id": 1, "Value": "abc"}
    assert repr(_row()) == "{Row Id = 1, Value = 'abc'}"


@pytest.mark.parametrize("clone", [copy.copy, copy.deepcopy, lambda row: pickle.loads(pickle.dumps(row))])
def test_rows_survive_copy_and_pickle(clone):
    row = _row()
    cloned = clone(row)
    assert cloned == row
    assert cloned.Value == "abc"
    assert cloned.columns == ("Id", "Value")
    with pytest.raises(AttributeError):
        cloned.Value = "changed"


def test_private_names_are_not_columns():
    with pytest.raises(AttributeError):
        _row()._missing
