from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, TypedDict, Tuple


# ---- типизированные структуры данных

class ColumnInfo(TypedDict):
    name: str             # имя колонки
    type: str             # udt_name: 'int4', 'bool', 'timestamptz', 'jsonb', 'vector' ...
    nullable: bool        # может ли колонка быть NULL


class TableData(TypedDict):
    columns: List[ColumnInfo]      # колонки в порядке ordinal_position
    rows: List[Tuple[Any, ...]]    # строки страницы, значения в порядке columns


class FilterSpec(TypedDict, total=False):
    column: str           # колонка
    operator: str         # ILIKE, =, <>, >, <, >=, <=, IS NULL, IS NOT NULL
    value: str            # значение (для IS NULL / IS NOT NULL отсутствует)


class SortSpec(TypedDict):
    column: str
    direction: str        # 'asc' | 'desc'


class ChangePayload(TypedDict):
    pks: Dict[str, Any]        # первичный ключ строки
    changes: Dict[str, Any]    # колонка -> новое значение
    original: Dict[str, Any]   # снимок строки на момент первой правки


FILTER_OPERATORS = ("ILIKE", "=", "<>", ">", "<", ">=", "<=", "IS NULL", "IS NOT NULL")
NULL_OPERATORS = ("IS NULL", "IS NOT NULL")
LOGICAL_OPERATORS = ("AND", "OR")
SORT_DIRECTIONS = ("asc", "desc")


class BaseTableSource(ABC):
    """
    Абстрактный источник данных таблицы (RemoteTableSource).

    Реализация выполняет запросы и обновления на стороне СУБД;
    ядро буфера правок общается только с этим интерфейсом.
    Все методы синхронные: асинхронность обеспечивает KeyedFetcher.
    Ошибки — DbConnectionError / QueryError / UpdateError.
    """

    @abstractmethod
    def list_schemas(self, uri: str) -> List[str]:
        """список пользовательских схем (без системных)"""

    @abstractmethod
    def list_tables(self, uri: str, schema: str) -> List[str]:
        """обычные таблицы схемы"""

    @abstractmethod
    def get_primary_keys(self, uri: str, schema: str, table: str) -> List[str]:
        """
        колонки первичного ключа в порядке определения.
        пустой список = у таблицы нет PK (редактирование запрещено).
        """

    @abstractmethod
    def get_table_data(
        self,
        uri: str,
        schema: str,
        table: str,
        limit: int,
        offset: int,
        filters: Optional[List[FilterSpec]] = None,
        logical_operator: str = "AND",
        sorts: Optional[List[SortSpec]] = None,
    ) -> TableData:
        """
        страница данных таблицы с фильтрами и сортировкой.
        """

    @abstractmethod
    def update_rows(
        self,
        uri: str,
        schema: str,
        table: str,
        changes: List[ChangePayload],
    ) -> None:
        """
        применить пачку правок. Всё или ничего: при ошибке — UpdateError,
        в базе не остаётся частично применённых правок.
        """

    def get_column_types(self, uri: str, schema: str, table: str) -> Dict[str, str]:
        """имя колонки -> udt_name (по умолчанию через get_table_data с limit=0)"""
        data = self.get_table_data(uri, schema, table, 0, 0)
        return {c["name"]: c["type"] for c in data["columns"]}
