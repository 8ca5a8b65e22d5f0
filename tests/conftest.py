from __future__ import annotations

from concurrent.futures import Executor, Future
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from pgedit.db.errors import QueryError, UpdateError
from pgedit.extractors.base import BaseTableSource, ColumnInfo, TableData
from pgedit.services.fetcher import KeyedFetcher
from pgedit.services.table_service import TableService
from pgedit.state.table_session import TableSession


class ImmediateExecutor(Executor):
    """Выполняет задачу сразу в вызывающем потоке."""

    def submit(self, fn, *args, **kwargs) -> Future:
        fut: Future = Future()
        try:
            fut.set_result(fn(*args, **kwargs))
        except Exception as e:
            fut.set_exception(e)
        return fut


class ManualExecutor(Executor):
    """Копит задачи; тест сам решает, какую и когда завершить."""

    def __init__(self) -> None:
        self.pending: List[Tuple[Callable[[], Any], Future]] = []

    def submit(self, fn, *args, **kwargs) -> Future:
        fut: Future = Future()
        self.pending.append((lambda: fn(*args, **kwargs), fut))
        return fut

    def complete(self, index: int = 0) -> None:
        fn, fut = self.pending.pop(index)
        fut.set_result(fn())

    def complete_all(self) -> None:
        while self.pending:
            self.complete(0)


USERS_COLUMNS: List[ColumnInfo] = [
    ColumnInfo(name="id", type="int4", nullable=False),
    ColumnInfo(name="name", type="text", nullable=False),
    ColumnInfo(name="active", type="bool", nullable=True),
    ColumnInfo(name="meta", type="jsonb", nullable=True),
]


class FakeTableSource(BaseTableSource):
    """In-memory источник: public.users с PK и public.log без PK."""

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[str, Any]] = {
            "users": {
                "columns": list(USERS_COLUMNS),
                "pks": ["id"],
                "rows": [
                    {"id": 1, "name": "Ann", "active": True, "meta": {"a": 1}},
                    {"id": 2, "name": "Bob", "active": False, "meta": None},
                    {"id": 3, "name": "Cid", "active": None, "meta": None},
                ],
            },
            "log": {
                "columns": [ColumnInfo(name="msg", type="text", nullable=True)],
                "pks": [],
                "rows": [{"msg": "hello"}],
            },
        }
        self.calls: List[Tuple[str, Any]] = []
        self.fail_update: Optional[str] = None
        self.fail_data: Optional[str] = None

    def list_schemas(self, uri: str) -> List[str]:
        self.calls.append(("schemas", uri))
        return ["public"]

    def list_tables(self, uri: str, schema: str) -> List[str]:
        self.calls.append(("tables", schema))
        return sorted(self.tables)

    def get_primary_keys(self, uri: str, schema: str, table: str) -> List[str]:
        self.calls.append(("primaryKeys", table))
        return list(self.tables[table]["pks"])

    def get_table_data(self, uri, schema, table, limit, offset, filters=None,
                       logical_operator="AND", sorts=None) -> TableData:
        self.calls.append(("tableData", (table, limit, offset, filters, logical_operator, sorts)))
        if self.fail_data:
            raise QueryError(self.fail_data)
        t = self.tables[table]
        names = [c["name"] for c in t["columns"]]
        rows = [tuple(r.get(n) for n in names) for r in t["rows"]]
        return TableData(columns=list(t["columns"]), rows=rows[offset:offset + limit])

    def update_rows(self, uri, schema, table, changes) -> None:
        self.calls.append(("update", changes))
        if self.fail_update:
            raise UpdateError(self.fail_update)
        t = self.tables[table]
        for ch in changes:
            for row in t["rows"]:
                if all(row.get(k) == v for k, v in ch["pks"].items()):
                    row.update(ch["changes"])


@pytest.fixture
def source() -> FakeTableSource:
    return FakeTableSource()


@pytest.fixture
def service(source: FakeTableSource) -> TableService:
    return TableService(source)


@pytest.fixture
def session(service: TableService) -> TableSession:
    """Сессия с синхронным исполнением; подключена, выбрана public.users."""
    s = TableSession(service, KeyedFetcher(executor=ImmediateExecutor()), page_size=100)
    s.connect("postgresql://u:p@localhost/db")
    s.select_schema("public")
    s.select_table("users")
    return s
