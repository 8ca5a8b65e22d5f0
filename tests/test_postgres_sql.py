from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from pgedit.db.errors import QueryError, UpdateError
from pgedit.extractors.postgres import build_select_sql, build_update_sql, cell_value, to_sql_value

COLUMNS = ["id", "name", "deleted_at"]


def test_select_without_filters_or_sorts() -> None:
    sql, params = build_select_sql("public", "users", COLUMNS, 100, 0)
    assert sql == 'SELECT * FROM "public"."users" LIMIT :limit OFFSET :offset'
    assert params == {"limit": 100, "offset": 0}


def test_select_with_filters_and_sorts() -> None:
    sql, params = build_select_sql(
        "public", "users", COLUMNS, 25, 50,
        filters=[
            {"column": "name", "operator": "ILIKE", "value": "%an%"},
            {"column": "deleted_at", "operator": "IS NULL"},
        ],
        logical_operator="or",
        sorts=[{"column": "name", "direction": "desc"}, {"column": "id", "direction": "asc"}],
    )
    assert sql == (
        'SELECT * FROM "public"."users" '
        'WHERE "name" ILIKE :f0 OR "deleted_at" IS NULL '
        'ORDER BY "name" DESC, "id" ASC '
        "LIMIT :limit OFFSET :offset"
    )
    assert params == {"f0": "%an%", "limit": 25, "offset": 50}


def test_identifiers_are_quoted() -> None:
    sql, _ = build_select_sql('we"ird', "t", [], 1, 0)
    assert sql.startswith('SELECT * FROM "we""ird"."t"')


@pytest.mark.parametrize(
    "kwargs",
    [
        {"limit": -1, "offset": 0},
        {"limit": 10, "offset": -5},
        {"limit": 10, "offset": 0, "filters": [{"column": "nope", "operator": "=", "value": "1"}]},
        {"limit": 10, "offset": 0, "filters": [{"column": "id", "operator": "~", "value": "1"}]},
        {"limit": 10, "offset": 0, "logical_operator": "XOR"},
        {"limit": 10, "offset": 0, "sorts": [{"column": "nope", "direction": "asc"}]},
    ],
)
def test_select_rejects_bad_input(kwargs) -> None:
    with pytest.raises(QueryError):
        build_select_sql("public", "users", COLUMNS, **kwargs)


def test_unknown_sort_direction_is_skipped() -> None:
    sql, _ = build_select_sql("public", "users", COLUMNS, 10, 0,
                              sorts=[{"column": "id", "direction": "sideways"}])
    assert "ORDER BY" not in sql


def test_update_sql() -> None:
    sql, params = build_update_sql(
        "public", "users",
        {"pks": {"id": 7}, "changes": {"name": "Anna", "meta": {"a": 1}}, "original": {}},
        {"id": "int4", "name": "text", "meta": "jsonb"},
    )
    assert sql == (
        'UPDATE "public"."users" SET "name" = :v0, "meta" = CAST(:v1 AS jsonb) '
        'WHERE "id" = :k0'
    )
    assert params == {"v0": "Anna", "v1": '{"a": 1}', "k0": 7}


def test_update_sql_requires_known_types_and_keys() -> None:
    with pytest.raises(UpdateError):
        build_update_sql("public", "users", {"pks": {"id": 1}, "changes": {"x": 1}, "original": {}}, {"id": "int4"})
    with pytest.raises(UpdateError):
        build_update_sql("public", "users", {"pks": {}, "changes": {"id": 1}, "original": {}}, {"id": "int4"})
    with pytest.raises(UpdateError):
        build_update_sql("public", "users", {"pks": {"id": 1}, "changes": {}, "original": {}}, {"id": "int4"})


def test_to_sql_value_conversions() -> None:
    assert to_sql_value("", "int4") is None
    assert to_sql_value("", "text") == ""
    assert to_sql_value("42", "int8") == 42
    assert to_sql_value("1.50", "numeric") == Decimal("1.50")
    assert to_sql_value("2024-01-02", "date") == dt.date(2024, 1, 2)
    assert to_sql_value("2024-01-02 03:04:05", "timestamp") == dt.datetime(2024, 1, 2, 3, 4, 5)
    assert to_sql_value([1.0, 2.5], "vector") == "[1.0,2.5]"
    assert to_sql_value(True, "bool") is True
    assert to_sql_value(None, "bool") is None


def test_to_sql_value_rejects_garbage() -> None:
    with pytest.raises(UpdateError):
        to_sql_value("yes", "bool")
    with pytest.raises(UpdateError):
        to_sql_value("abc", "int4")
    with pytest.raises(UpdateError):
        to_sql_value("1,5", "numeric")


def test_cell_value_normalises_driver_values() -> None:
    assert cell_value(dt.date(2024, 1, 2), "date") == "2024-01-02"
    assert cell_value(dt.datetime(2024, 1, 2, 3, 4, 5), "timestamp") == "2024-01-02 03:04:05"
    assert cell_value("[1,2.5]", "vector") == [1.0, 2.5]
    assert cell_value(b"\x01\xff", "bytea") == "\\x01ff"
    assert cell_value(Decimal("1.5"), "numeric") == "1.5"
    assert cell_value({"a": 1}, "jsonb") == {"a": 1}
