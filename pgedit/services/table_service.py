import logging
import time
from typing import Any, Callable, Dict, List, Optional, Type

from pgedit.db.connections import mask_uri
from pgedit.db.errors import DbConnectionError, QueryError, TableEditorError, UpdateError
from pgedit.extractors.base import BaseTableSource, ChangePayload

logger = logging.getLogger(__name__)

Result = Dict[str, Any]


class TableService:
    """
    Обёртка над источником таблиц: ни одно исключение не уходит в UI,
    каждый вызов возвращает {"ok", "value", "error", "duration_ms"}.
    error — экземпляр DbConnectionError / QueryError / UpdateError.
    """

    def __init__(self, source: BaseTableSource):
        self.source = source
        self.on_logged: Optional[Callable[[Result], None]] = None

    def _call(self, op: str, uri: str, error_cls: Type[TableEditorError], fn: Callable[[], Any]) -> Result:
        t0 = time.perf_counter()
        ok, value, err = True, None, None
        try:
            value = fn()
        except TableEditorError as e:
            ok, err = False, e
        except Exception as e:
            logger.exception("[%s] unexpected failure on %s", op, mask_uri(uri))
            ok, err = False, error_cls(str(e) or e.__class__.__name__, cause=e)
        dt = round((time.perf_counter() - t0) * 1000)

        if ok:
            logger.debug("[%s] ok in %d ms", op, dt)
        else:
            logger.warning("[%s] %s error: %s", op, err.kind, err)

        result = {"ok": ok, "value": value, "error": err, "duration_ms": dt}

        # уведомим UI (строка статуса)
        cb = self.on_logged
        if callable(cb):
            cb({"op": op, **result})
        return result

    def list_schemas(self, uri: str) -> Result:
        return self._call("schemas", uri, DbConnectionError, lambda: self.source.list_schemas(uri))

    def list_tables(self, uri: str, schema: str) -> Result:
        return self._call("tables", uri, QueryError, lambda: self.source.list_tables(uri, schema))

    def get_primary_keys(self, uri: str, schema: str, table: str) -> Result:
        return self._call(
            "primaryKeys", uri, QueryError,
            lambda: self.source.get_primary_keys(uri, schema, table),
        )

    def get_table_data(self, uri: str, spec: Dict[str, Any]) -> Result:
        """spec — результат QueryBuilderState.to_query_spec()."""
        return self._call(
            "tableData", uri, QueryError,
            lambda: self.source.get_table_data(
                uri,
                spec["schema"],
                spec["table"],
                spec["limit"],
                spec["offset"],
                spec.get("filters"),
                spec.get("logical_operator", "AND"),
                spec.get("sorts"),
            ),
        )

    def update_rows(self, uri: str, schema: str, table: str, changes: List[ChangePayload]) -> Result:
        return self._call(
            "apply", uri, UpdateError,
            lambda: self.source.update_rows(uri, schema, table, changes),
        )
