from __future__ import annotations

from pgedit.db.errors import UpdateError
from pgedit.services.change_applier import ChangeApplier
from pgedit.services.fetcher import KeyedFetcher
from pgedit.services.table_service import TableService
from pgedit.state.pending_changes import PendingChangeStore

from conftest import FakeTableSource, ImmediateExecutor, ManualExecutor

ANN = {"id": 1, "name": "Ann", "active": True, "meta": {"a": 1}}


def _applier(source, executor):
    refetched = []
    applier = ChangeApplier(
        TableService(source),
        KeyedFetcher(executor=executor),
        refetch=lambda: refetched.append(True),
    )
    return applier, refetched


def test_success_clears_buffer_and_refetches() -> None:
    source = FakeTableSource()
    applier, refetched = _applier(source, ImmediateExecutor())
    store = PendingChangeStore()
    store.record_edit({"id": 1}, "name", "Anna", ANN)

    results = []
    applier.apply("uri", "public", "users", store, results.append)

    assert results[0]["ok"] and results[0]["value"] == 1
    assert len(store) == 0
    assert refetched == [True]
    assert source.tables["users"]["rows"][0]["name"] == "Anna"
    assert applier.in_flight == 0


def test_failure_keeps_buffer_and_reports_error() -> None:
    source = FakeTableSource()
    source.fail_update = "duplicate key"
    applier, refetched = _applier(source, ImmediateExecutor())
    store = PendingChangeStore()
    store.record_edit({"id": 1}, "name", "Anna", ANN)

    results = []
    applier.apply("uri", "public", "users", store, results.append)

    assert not results[0]["ok"]
    assert isinstance(results[0]["error"], UpdateError)
    assert len(store) == 1
    assert refetched == []


def test_empty_buffer_is_noop() -> None:
    source = FakeTableSource()
    applier, refetched = _applier(source, ImmediateExecutor())
    results = []
    applier.apply("uri", "public", "users", PendingChangeStore(), results.append)
    assert results[0]["ok"] and results[0]["value"] == 0
    assert not any(call[0] == "update" for call in source.calls)
    assert refetched == []


def test_edit_made_during_apply_survives() -> None:
    source = FakeTableSource()
    executor = ManualExecutor()
    applier, _ = _applier(source, executor)
    store = PendingChangeStore()
    store.record_edit({"id": 1}, "name", "Anna", ANN)

    applier.apply("uri", "public", "users", store)
    assert applier.in_flight == 1

    store.record_edit({"id": 2}, "name", "Bobby", {"id": 2, "name": "Bob"})
    executor.complete_all()

    assert applier.in_flight == 0
    assert store.find_by_primary_key({"id": 1}) is None
    assert store.find_by_primary_key({"id": 2}).changes == {"name": "Bobby"}


def test_cleared_buffer_is_left_alone_when_commit_lands() -> None:
    source = FakeTableSource()
    executor = ManualExecutor()
    applier, refetched = _applier(source, executor)
    store = PendingChangeStore()
    store.record_edit({"id": 1}, "name", "Anna", ANN)

    results = []
    applier.apply("uri", "public", "users", store, results.append)
    store.clear()
    store.record_edit({"id": 1}, "note", "b", {"id": 1, "note": "a"})
    executor.complete_all()

    assert results[0]["ok"] and results[0]["value"] == 1
    assert store.find_by_primary_key({"id": 1}).changes == {"note": "b"}
    assert refetched == []
