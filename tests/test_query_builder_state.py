from __future__ import annotations

import pytest

from pgedit.db.errors import QueryError
from pgedit.state.query_builder_state import QueryBuilderState


def _state() -> QueryBuilderState:
    q = QueryBuilderState(limit=50)
    q.reset_for_table("public", "users")
    return q


def test_query_spec_omits_empty_filters_and_sorts() -> None:
    spec = _state().to_query_spec()
    assert spec == {
        "schema": "public",
        "table": "users",
        "limit": 50,
        "offset": 0,
        "logical_operator": "AND",
    }
    assert "filters" not in spec and "sorts" not in spec


def test_changing_operator_resets_value() -> None:
    q = _state()
    q.add_filter(["name", "id"])
    q.set_filter_value(0, "ann")
    q.set_operator(0, "=")
    assert q.draft_filters[0] == {"column": "name", "operator": "=", "value": ""}


def test_unknown_operator_is_rejected() -> None:
    q = _state()
    q.add_filter(["name"])
    with pytest.raises(QueryError):
        q.set_operator(0, "LIKE ANY")


def test_add_filter_without_columns_does_nothing() -> None:
    q = _state()
    assert q.add_filter([]) is None
    assert q.draft_filters == []


def test_apply_filters_promotes_draft_and_resets_offset() -> None:
    q = _state()
    q.set_offset(100)
    q.add_filter(["name"])
    q.set_filter_value(0, "an")
    q.set_draft_logical_operator("or")
    # draft не влияет на выборку до apply
    assert "filters" not in q.to_query_spec()

    q.apply_filters()
    spec = q.to_query_spec()
    assert spec["offset"] == 0
    assert spec["logical_operator"] == "OR"
    assert spec["filters"] == [{"column": "name", "operator": "ILIKE", "value": "an"}]


def test_null_operators_carry_no_value() -> None:
    q = _state()
    q.add_filter(["meta"])
    q.set_operator(0, "IS NULL")
    q.set_filter_value(0, "ignored")
    q.apply_filters()
    assert q.to_query_spec()["filters"] == [{"column": "meta", "operator": "IS NULL"}]


def test_reopening_editor_discards_unapplied_draft() -> None:
    q = _state()
    q.add_filter(["name"])
    q.set_filter_value(0, "a")
    q.apply_filters()

    q.open_filter_editor()
    q.set_filter_value(0, "changed")
    q.add_filter(["name"])

    q.open_filter_editor()
    assert q.draft_filters == [{"column": "name", "operator": "ILIKE", "value": "a"}]
    # draft — копия, правки не протекают в active
    q.set_filter_value(0, "b")
    assert q.active_filters[0]["value"] == "a"


def test_toggle_sort_cycles_and_replaces() -> None:
    q = _state()
    q.toggle_sort("name")
    assert q.sorts == [{"column": "name", "direction": "asc"}]
    q.toggle_sort("name")
    assert q.sorts == [{"column": "name", "direction": "desc"}]
    q.toggle_sort("name")
    assert q.sorts == []

    q.toggle_sort("name")
    q.toggle_sort("id")
    assert q.sorts == [{"column": "id", "direction": "asc"}]


def test_multi_sort_keeps_priority() -> None:
    q = _state()
    q.toggle_sort("name", multi=True)
    q.toggle_sort("id", multi=True)
    q.toggle_sort("name", multi=True)
    assert q.sorts == [
        {"column": "name", "direction": "desc"},
        {"column": "id", "direction": "asc"},
    ]
    q.toggle_sort("name", multi=True)
    assert q.sorts == [{"column": "id", "direction": "asc"}]


def test_paging() -> None:
    q = _state()
    q.next_page()
    assert q.offset == 50
    q.previous_page()
    q.previous_page()
    assert q.offset == 0
    with pytest.raises(QueryError):
        q.set_limit("0")
    with pytest.raises(QueryError):
        q.set_offset(-1)


def test_table_switch_resets_everything() -> None:
    q = _state()
    q.add_filter(["name"])
    q.apply_filters()
    q.toggle_sort("name")
    q.next_page()
    q.reset_for_table("public", "orders")
    spec = q.to_query_spec()
    assert spec["table"] == "orders" and spec["offset"] == 0
    assert "filters" not in spec and "sorts" not in spec


def test_fetch_key_changes_with_every_parameter() -> None:
    q = _state()
    base = q.fetch_key("uri")
    assert base == q.fetch_key("uri")
    q.toggle_sort("name")
    with_sort = q.fetch_key("uri")
    assert with_sort != base
    q.next_page()
    assert q.fetch_key("uri") != with_sort
    assert q.fetch_key("other") != q.fetch_key("uri")
