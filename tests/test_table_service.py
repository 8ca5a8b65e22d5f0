from __future__ import annotations

from pgedit.db.errors import DbConnectionError, QueryError, UpdateError
from pgedit.services.table_service import TableService

from conftest import FakeTableSource

SPEC = {"schema": "public", "table": "users", "limit": 2, "offset": 0, "logical_operator": "AND"}


def test_success_result_shape() -> None:
    result = TableService(FakeTableSource()).get_table_data("uri", SPEC)
    assert result["ok"] is True
    assert result["error"] is None
    assert len(result["value"]["rows"]) == 2
    assert isinstance(result["duration_ms"], int)


def test_typed_errors_pass_through() -> None:
    source = FakeTableSource()
    source.fail_update = "boom"
    result = TableService(source).update_rows("uri", "public", "users", [])
    assert result["ok"] is False
    assert isinstance(result["error"], UpdateError)
    assert result["value"] is None


def test_unexpected_errors_are_wrapped_per_operation() -> None:
    class Broken(FakeTableSource):
        def list_schemas(self, uri):
            raise RuntimeError("socket closed")

        def list_tables(self, uri, schema):
            raise KeyError(schema)

    service = TableService(Broken())
    schemas = service.list_schemas("uri")
    assert isinstance(schemas["error"], DbConnectionError)
    assert str(schemas["error"]) == "socket closed"
    assert isinstance(schemas["error"].cause, RuntimeError)
    assert isinstance(service.list_tables("uri", "public")["error"], QueryError)


def test_on_logged_receives_every_call() -> None:
    service = TableService(FakeTableSource())
    seen = []
    service.on_logged = seen.append
    service.list_schemas("uri")
    service.get_primary_keys("uri", "public", "users")
    assert [e["op"] for e in seen] == ["schemas", "primaryKeys"]
    assert seen[1]["value"] == ["id"]
