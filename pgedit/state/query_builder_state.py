import copy
from typing import Any, Dict, List, Optional, Sequence

from pgedit.db.errors import QueryError
from pgedit.extractors.base import FILTER_OPERATORS, LOGICAL_OPERATORS, NULL_OPERATORS


class QueryBuilderState:
    """
    Фильтры / сортировка / пагинация выбранной таблицы.

    Фильтры живут в двух экземплярах: draft (редактируется в диалоге) и
    active (по нему идёт выборка). Сортировка одна и применяется сразу.
    """

    def __init__(self, limit: int = 100):
        self.schema: Optional[str] = None
        self.table: Optional[str] = None
        self.limit = limit
        self.offset = 0
        self.draft_filters: List[Dict[str, Any]] = []    # [{"column":..., "operator":..., "value":...}]
        self.active_filters: List[Dict[str, Any]] = []
        self.draft_logical_operator = "AND"
        self.active_logical_operator = "AND"
        self.sorts: List[Dict[str, str]] = []             # [{"column":..., "direction": "asc"|"desc"}]

    # --- выбор таблицы ---

    def reset_for_table(self, schema: Optional[str], table: Optional[str]) -> None:
        """Новая таблица: фильтры, сортировка и смещение от старой не имеют смысла."""
        self.schema = schema
        self.table = table
        self.offset = 0
        self.draft_filters = []
        self.active_filters = []
        self.draft_logical_operator = "AND"
        self.active_logical_operator = "AND"
        self.sorts = []

    # --- draft фильтры ---

    def _draft(self, index: int) -> Dict[str, Any]:
        if not 0 <= index < len(self.draft_filters):
            raise IndexError(f"no filter #{index}")
        return self.draft_filters[index]

    def add_filter(self, columns: Sequence[str]) -> Optional[Dict[str, Any]]:
        """Новый фильтр: первая колонка, ILIKE, пустое значение. Без колонок — ничего."""
        if not columns:
            return None
        f = {"column": columns[0], "operator": "ILIKE", "value": ""}
        self.draft_filters.append(f)
        return f

    def remove_filter(self, index: int) -> None:
        self._draft(index)
        del self.draft_filters[index]

    def set_filter_column(self, index: int, column: str) -> None:
        self._draft(index)["column"] = column

    def set_operator(self, index: int, op: str) -> None:
        """Смена оператора всегда сбрасывает значение."""
        op = (op or "").upper()
        if op not in FILTER_OPERATORS:
            raise QueryError(f"Unsupported filter operator: {op!r}")
        f = self._draft(index)
        f["operator"] = op
        f["value"] = ""

    def set_filter_value(self, index: int, value: str) -> None:
        f = self._draft(index)
        if f["operator"] in NULL_OPERATORS:
            return
        f["value"] = "" if value is None else str(value)

    def set_draft_logical_operator(self, op: str) -> None:
        op = (op or "").upper()
        if op not in LOGICAL_OPERATORS:
            raise QueryError(f"Unsupported logical operator: {op!r}")
        self.draft_logical_operator = op

    def open_filter_editor(self) -> None:
        """Диалог открыли заново — draft снова равен active, неподтверждённое теряем."""
        self.draft_filters = copy.deepcopy(self.active_filters)
        self.draft_logical_operator = self.active_logical_operator

    def apply_filters(self) -> None:
        """draft -> active одним шагом; прежняя страница больше ничего не значит."""
        self.active_filters = copy.deepcopy(self.draft_filters)
        self.active_logical_operator = self.draft_logical_operator
        self.offset = 0

    # --- сортировка ---

    def sort_direction(self, column: str) -> Optional[str]:
        for s in self.sorts:
            if s["column"] == column:
                return s["direction"]
        return None

    def toggle_sort(self, column: str, multi: bool = False) -> None:
        """
        Клик по заголовку: нет -> asc -> desc -> нет.
        multi=False оставляет единственную сортировку по этой колонке.
        """
        current = self.sort_direction(column)
        nxt = {None: "asc", "asc": "desc", "desc": None}[current]

        if multi:
            sorts = [s for s in self.sorts if s["column"] != column]
            if nxt is not None:
                if current is None:
                    sorts.append({"column": column, "direction": nxt})
                else:
                    # сохраняем приоритет колонки
                    idx = next(i for i, s in enumerate(self.sorts) if s["column"] == column)
                    sorts.insert(idx, {"column": column, "direction": nxt})
            self.sorts = sorts
        else:
            self.sorts = [] if nxt is None else [{"column": column, "direction": nxt}]

    def clear_sorts(self) -> None:
        self.sorts = []

    # --- пагинация ---

    def set_limit(self, limit: Any) -> None:
        try:
            value = int(limit)
        except (TypeError, ValueError):
            raise QueryError(f"Invalid limit: {limit!r}")
        if value < 1:
            raise QueryError(f"Invalid limit: {limit!r}")
        self.limit = value

    def set_offset(self, offset: Any) -> None:
        try:
            value = int(offset)
        except (TypeError, ValueError):
            raise QueryError(f"Invalid offset: {offset!r}")
        if value < 0:
            raise QueryError(f"Invalid offset: {offset!r}")
        self.offset = value

    def next_page(self) -> None:
        self.offset += self.limit

    def previous_page(self) -> None:
        self.offset = max(0, self.offset - self.limit)

    # --- сборка QuerySpec ---

    def to_query_spec(self) -> Dict[str, Any]:
        """
        Нормализованный запрос. filters / sorts не попадают в словарь вовсе,
        если списки пустые (не пустой массив).
        """
        spec: Dict[str, Any] = {
            "schema": self.schema,
            "table": self.table,
            "limit": self.limit,
            "offset": self.offset,
            "logical_operator": self.active_logical_operator,
        }
        filters = []
        for f in self.active_filters:
            item = {"column": f["column"], "operator": f["operator"]}
            if f["operator"] not in NULL_OPERATORS:
                item["value"] = f.get("value", "")
            filters.append(item)
        if filters:
            spec["filters"] = filters
        if self.sorts:
            spec["sorts"] = [dict(s) for s in self.sorts]
        return spec

    def fetch_key(self, uri: str) -> tuple:
        """Полный набор параметров выборки — ключ для отбрасывания устаревших ответов."""
        spec = self.to_query_spec()
        return (
            "tableData",
            uri,
            spec["schema"],
            spec["table"],
            spec["limit"],
            spec["offset"],
            tuple(tuple(sorted(f.items())) for f in spec.get("filters", [])),
            spec["logical_operator"],
            tuple((s["column"], s["direction"]) for s in spec.get("sorts", [])),
        )
