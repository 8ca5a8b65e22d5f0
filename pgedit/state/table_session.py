"""
Состояние экрана редактора: подключение, выбранные схема/таблица,
выборки, буфер правок. Всё меняется только в UI-потоке; фоновые
выборки возвращаются через KeyedFetcher.dispatch.
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional

from pgedit.db.connections import dispose_engine, mask_uri
from pgedit.db.errors import EditRejectedError, QueryError
from pgedit.extractors.base import ColumnInfo, TableData
from pgedit.services.change_applier import ChangeApplier
from pgedit.services.fetcher import KeyedFetcher
from pgedit.services.table_service import Result, TableService
from pgedit.state.cell_values import CellKind, classify, coerce_input
from pgedit.state.pending_changes import Change, PendingChangeStore
from pgedit.state.query_builder_state import QueryBuilderState
from pgedit.state.row_view import DisplayRow, materialize, rows_to_dicts

logger = logging.getLogger(__name__)


class TableSession:
    def __init__(self, service: TableService, fetcher: KeyedFetcher, page_size: int = 100):
        self.service = service
        self.fetcher = fetcher
        self.query = QueryBuilderState(limit=page_size)
        self.store = PendingChangeStore()
        self.applier = ChangeApplier(service, fetcher, refetch=self.refresh)

        self.uri = ""
        self.connected = False
        self.connecting = False
        self.connect_error: Optional[str] = None

        self.schemas: List[str] = []
        self.schema: Optional[str] = None
        self.tables: List[str] = []
        self.table: Optional[str] = None
        self.primary_keys: Optional[List[str]] = None   # None — ещё не загружены
        self.table_data: Optional[TableData] = None     # последняя успешная выборка
        self.loading_tables = False
        self.loading_data = False
        self.error: Optional[str] = None                 # ошибка выборки таблиц/данных
        self.apply_error: Optional[str] = None

        self._listeners: List[Callable[[], None]] = []

    # --- подписки ---

    def add_listener(self, fn: Callable[[], None]) -> None:
        self._listeners.append(fn)

    def _notify(self) -> None:
        for fn in list(self._listeners):
            fn()

    # --- подключение ---

    def connect(self, uri: str) -> None:
        uri = (uri or "").strip()
        if self.uri and self.uri != uri:
            # пул старой базы больше не нужен
            dispose_engine(self.uri)
        self.uri = uri
        self.connecting = True
        self.connect_error = None
        key = ("schemas", uri)
        logger.info("[session] connecting to %s", mask_uri(uri))
        self.fetcher.fetch(
            "schemas", key,
            lambda: self.service.list_schemas(uri),
            self._on_schemas,
            current=lambda: ("schemas", self.uri),
        )
        self._notify()

    def _on_schemas(self, result: Result) -> None:
        self.connecting = False
        if result["ok"]:
            self.connected = True
            self.schemas = list(result["value"])
        else:
            self.connected = False
            self.schemas = []
            self.connect_error = str(result["error"])
        self._select_none()
        self._notify()

    def disconnect(self) -> None:
        if self.uri:
            dispose_engine(self.uri)
        self.connected = False
        self.connecting = False
        self.schemas = []
        self._select_none()
        self.fetcher.invalidate()
        self._notify()

    def _select_none(self) -> None:
        self.schema = None
        self.tables = []
        self.table = None
        self.primary_keys = None
        self.table_data = None
        self.error = None
        self.store.clear()
        self.query.reset_for_table(None, None)

    # --- выбор схемы / таблицы ---

    def select_schema(self, schema: Optional[str]) -> None:
        self._select_none()
        self.schema = schema
        self.fetcher.invalidate("primaryKeys", "tableData")
        if schema:
            self.loading_tables = True
            uri = self.uri
            self.fetcher.fetch(
                "tables", ("tables", uri, schema),
                lambda: self.service.list_tables(uri, schema),
                self._on_tables,
                current=lambda: ("tables", self.uri, self.schema),
            )
        self._notify()

    def _on_tables(self, result: Result) -> None:
        self.loading_tables = False
        if result["ok"]:
            self.tables = list(result["value"])
            self.error = None
        else:
            self.error = str(result["error"])
        self._notify()

    def select_table(self, table: Optional[str]) -> None:
        """Новая таблица: буфер правок очищается безусловно."""
        self.table = table
        self.query.reset_for_table(self.schema, table)
        self.store.clear()
        self.primary_keys = None
        self.table_data = None
        self.error = None
        self.apply_error = None
        if not table:
            self.fetcher.invalidate("primaryKeys", "tableData")
            self._notify()
            return

        uri, schema = self.uri, self.schema
        self.fetcher.fetch(
            "primaryKeys", ("primaryKeys", uri, schema, table),
            lambda: self.service.get_primary_keys(uri, schema, table),
            self._on_primary_keys,
            current=lambda: ("primaryKeys", self.uri, self.schema, self.table),
        )
        self.refresh()

    def _on_primary_keys(self, result: Result) -> None:
        if result["ok"]:
            self.primary_keys = list(result["value"])
            if not self.primary_keys:
                logger.info("[session] %s.%s has no primary key, editing disabled", self.schema, self.table)
        else:
            self.primary_keys = []
            self.error = str(result["error"])
        self._notify()

    # --- выборка данных ---

    def refresh(self) -> None:
        """Повторить выборку с текущим QuerySpec."""
        if not self.table:
            return
        uri = self.uri
        spec = self.query.to_query_spec()
        key = self.query.fetch_key(uri)
        self.loading_data = True
        self.fetcher.fetch(
            "tableData", key,
            lambda: self.service.get_table_data(uri, spec),
            self._on_table_data,
            current=lambda: self.query.fetch_key(self.uri),
        )
        self._notify()

    def _on_table_data(self, result: Result) -> None:
        self.loading_data = False
        if result["ok"]:
            self.table_data = result["value"]
            self.error = None
        else:
            # прошлые строки остаются на экране
            self.error = str(result["error"])
        self._notify()

    def apply_filters(self) -> None:
        self.query.apply_filters()
        self.refresh()

    def toggle_sort(self, column: str, multi: bool = False) -> None:
        self.query.toggle_sort(column, multi)
        self.refresh()

    def clear_sorts(self) -> None:
        self.query.clear_sorts()
        self.refresh()

    def next_page(self) -> None:
        self.query.next_page()
        self.refresh()

    def previous_page(self) -> None:
        self.query.previous_page()
        self.refresh()

    def set_limit(self, limit: Any) -> None:
        self.query.set_limit(limit)
        self.refresh()

    def set_offset(self, offset: Any) -> None:
        self.query.set_offset(offset)
        self.refresh()

    @property
    def has_next_page(self) -> bool:
        return self.table_data is not None and len(self.table_data["rows"]) >= self.query.limit

    # --- отображение ---

    @property
    def columns(self) -> List[ColumnInfo]:
        return list(self.table_data["columns"]) if self.table_data else []

    def column(self, name: str) -> ColumnInfo:
        for c in self.columns:
            if c["name"] == name:
                return c
        raise QueryError(f"Unknown column: {name!r}")

    def column_kind(self, name: str, value: Any = None) -> CellKind:
        return classify(self.column(name)["type"], value)

    def fetched_rows(self) -> List[Dict[str, Any]]:
        if not self.table_data:
            return []
        return rows_to_dicts(self.table_data["columns"], self.table_data["rows"])

    def display_rows(self) -> List[DisplayRow]:
        return materialize(self.fetched_rows(), self.store, self.primary_keys or [])

    # --- правки ---

    @property
    def can_edit(self) -> bool:
        return bool(self.primary_keys)

    def edit_cell(self, row: DisplayRow, column: str, value: Any) -> Optional[Change]:
        """
        Правка ячейки из редактора. Ключ берётся из исходной строки (row.pks),
        снимок original — текущая отображаемая строка.
        """
        if self.primary_keys is None:
            raise EditRejectedError("Primary keys are still loading")
        if not self.primary_keys:
            raise EditRejectedError(f"Table {self.schema}.{self.table} has no primary key; editing is disabled")

        info = self.column(column)
        kind = classify(info["type"], row.values.get(column))
        new_value = coerce_input(kind, value, info["nullable"])

        change = self.store.record_edit(row.pks, column, new_value, row.values)
        self._notify()
        return change

    def set_null(self, row: DisplayRow, column: str) -> Optional[Change]:
        return self.edit_cell(row, column, None)

    def discard_changes(self) -> None:
        self.store.clear()
        self._notify()

    @property
    def applying(self) -> bool:
        return self.applier.in_flight > 0

    def apply_changes(self, on_done: Optional[Callable[[Result], None]] = None) -> None:
        if not self.table or not self.schema:
            raise EditRejectedError("No table selected")

        def done(result: Result) -> None:
            self.apply_error = None if result["ok"] else str(result["error"])
            self._notify()
            if on_done:
                on_done(result)

        self.apply_error = None
        self.applier.apply(self.uri, self.schema, self.table, self.store, done)
        self._notify()
