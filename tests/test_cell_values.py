from __future__ import annotations

import datetime as dt

import pytest

from pgedit.db.errors import EditRejectedError
from pgedit.state.cell_values import (
    CellKind,
    bool_choices,
    canonical_date,
    canonical_timestamp,
    classify,
    coerce_input,
    display_text,
    same_value,
    value_text,
    vector_summary,
)


@pytest.mark.parametrize(
    ("column_type", "value", "kind"),
    [
        ("bool", True, CellKind.BOOLEAN),
        ("date", "2024-01-02", CellKind.DATE),
        ("timestamptz", "2024-01-02 10:00:00", CellKind.TIMESTAMP),
        ("int4", 5, CellKind.NUMERIC),
        ("numeric", "1.5", CellKind.NUMERIC),
        ("jsonb", {"a": 1}, CellKind.STRUCTURED),
        ("vector", [0.1, 0.2], CellKind.VECTOR),
        ("_float8", [0.1, 0.2], CellKind.VECTOR),
        ("text", "hello", CellKind.TEXT),
        ("text", '{"a": 1}', CellKind.TEXT),
        ("whatever", None, CellKind.TEXT),
    ],
)
def test_classify(column_type, value, kind) -> None:
    assert classify(column_type, value) is kind


def test_bool_choices_offer_null_only_when_nullable() -> None:
    assert bool_choices(True) == [True, False, None]
    assert bool_choices(False) == [True, False]


def test_null_rejected_for_not_null_column() -> None:
    with pytest.raises(EditRejectedError):
        coerce_input(CellKind.TEXT, None, nullable=False)
    assert coerce_input(CellKind.TEXT, None, nullable=True) is None


def test_vector_cells_are_read_only() -> None:
    with pytest.raises(EditRejectedError):
        coerce_input(CellKind.VECTOR, "[1,2]", nullable=True)


def test_boolean_input() -> None:
    assert coerce_input(CellKind.BOOLEAN, "true", nullable=False) is True
    assert coerce_input(CellKind.BOOLEAN, False, nullable=False) is False
    with pytest.raises(EditRejectedError):
        coerce_input(CellKind.BOOLEAN, "maybe", nullable=True)


def test_date_and_timestamp_are_canonicalised() -> None:
    assert coerce_input(CellKind.DATE, "2024-03-05T10:11", nullable=True) == "2024-03-05"
    assert coerce_input(CellKind.TIMESTAMP, "2024-03-05T10:11", nullable=True) == "2024-03-05 10:11:00"
    assert canonical_timestamp("2024-03-05 10:11:12+00:00") == "2024-03-05 10:11:12"
    assert canonical_date(dt.date(2024, 1, 2)) == "2024-01-02"
    with pytest.raises(EditRejectedError):
        coerce_input(CellKind.DATE, "yesterday", nullable=True)


def test_empty_input_in_non_text_column_means_null() -> None:
    assert coerce_input(CellKind.NUMERIC, "  ", nullable=True) is None
    with pytest.raises(EditRejectedError):
        coerce_input(CellKind.DATE, "", nullable=False)
    assert coerce_input(CellKind.TEXT, "", nullable=False) == ""


def test_numeric_input_is_validated() -> None:
    assert coerce_input(CellKind.NUMERIC, " 42 ", nullable=False) == "42"
    with pytest.raises(EditRejectedError):
        coerce_input(CellKind.NUMERIC, "4x2", nullable=False)


def test_structured_input_is_parsed_json() -> None:
    assert coerce_input(CellKind.STRUCTURED, '{"a": [1, 2]}', nullable=True) == {"a": [1, 2]}
    with pytest.raises(EditRejectedError):
        coerce_input(CellKind.STRUCTURED, "{broken", nullable=True)


def test_value_text_equality_is_string_based() -> None:
    assert value_text(None) == "null"
    assert value_text(True) == "true"
    assert value_text(3.0) == "3"
    assert same_value(1, "1")
    assert same_value({"a": 1}, {"a": 1})
    assert not same_value({"a": 1, "b": 2}, {"b": 2, "a": 1})


def test_display_text() -> None:
    assert display_text(None) == "NULL"
    assert display_text([0.5] * 3, CellKind.VECTOR) == "Vector (3 dimensions)"
    long = display_text("x" * 80)
    assert len(long) == 50 and long.endswith("…")


def test_vector_summary() -> None:
    s = vector_summary([3.0, 4.0])
    assert s["dimensions"] == 2
    assert s["min"] == 3.0 and s["max"] == 4.0
    assert s["mean"] == 3.5
    assert s["norm"] == pytest.approx(5.0)
