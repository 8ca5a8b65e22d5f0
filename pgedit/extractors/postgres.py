from __future__ import annotations
import datetime as dt
import json
import logging
import uuid
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Type

import psycopg2
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..db.connections import get_engine, mask_uri
from ..db.errors import DbConnectionError, QueryError, TableEditorError, UpdateError
from .base import (
    BaseTableSource,
    ChangePayload,
    ColumnInfo,
    FilterSpec,
    SortSpec,
    TableData,
    FILTER_OPERATORS,
    LOGICAL_OPERATORS,
    NULL_OPERATORS,
    SORT_DIRECTIONS,
)

logger = logging.getLogger(__name__)

TEXT_TYPES = ("text", "varchar", "bpchar", "char", "name", "citext")
INT_TYPES = ("int2", "int4", "int8")
FLOAT_TYPES = ("float4", "float8")
JSON_TYPES = ("json", "jsonb")
TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
)


def _quote_ident(ident: str) -> str:
    # экранируем двойные кавычки внутри идентификатора
    return '"' + ident.replace('"', '""') + '"'


def _quote_fqn(schema: str, table: str) -> str:
    """'public', 'branches' -> '"public"."branches"'"""
    return f"{_quote_ident(schema)}.{_quote_ident(table)}"


def _translate(exc: BaseException, default: Type[TableEditorError]) -> TableEditorError:
    """
    SQLAlchemy/psycopg2 исключение -> наша таксономия.
    Сетевые/авторизационные ошибки всегда DbConnectionError.
    """
    if isinstance(exc, TableEditorError):
        return exc
    if isinstance(exc, (OperationalError, psycopg2.OperationalError)):
        cls: Type[TableEditorError] = DbConnectionError
    else:
        cls = default
    orig = getattr(exc, "orig", None) or exc
    message = str(orig).strip().splitlines()[0] if str(orig).strip() else exc.__class__.__name__
    return cls(message, cause=exc)


# ---- сборка SQL (чистые функции, без соединения) --------------------------

def build_select_sql(
    schema: str,
    table: str,
    column_names: Sequence[str],
    limit: int,
    offset: int,
    filters: Optional[List[FilterSpec]] = None,
    logical_operator: str = "AND",
    sorts: Optional[List[SortSpec]] = None,
) -> Tuple[str, Dict[str, Any]]:
    """
    SELECT * страницы таблицы. Идентификаторы кавычим, значения — bind-параметры.
    Колонки фильтров/сортировок сверяем со списком колонок таблицы.
    """
    if limit is None or offset is None or int(limit) < 0 or int(offset) < 0:
        raise QueryError(f"Invalid pagination: limit={limit!r}, offset={offset!r}")

    known = set(column_names)
    params: Dict[str, Any] = {}

    # WHERE
    conds = []
    for i, f in enumerate(filters or []):
        col = f.get("column")
        op = (f.get("operator") or "").upper()
        if col not in known:
            raise QueryError(f"Unknown filter column: {col!r}")
        if op not in FILTER_OPERATORS:
            raise QueryError(f"Unsupported filter operator: {f.get('operator')!r}")
        qcol = _quote_ident(col)
        if op in NULL_OPERATORS:
            conds.append(f"{qcol} {op}")
        else:
            name = f"f{i}"
            params[name] = "" if f.get("value") is None else str(f.get("value"))
            conds.append(f"{qcol} {op} :{name}")

    logic = (logical_operator or "AND").upper()
    if logic not in LOGICAL_OPERATORS:
        raise QueryError(f"Unsupported logical operator: {logical_operator!r}")
    where_clause = ("WHERE " + f" {logic} ".join(conds)) if conds else ""

    # ORDER BY — неизвестные направления молча пропускаем
    order = []
    for s in sorts or []:
        direction = (s.get("direction") or "").lower()
        if direction not in SORT_DIRECTIONS:
            continue
        if s.get("column") not in known:
            raise QueryError(f"Unknown sort column: {s.get('column')!r}")
        order.append(f"{_quote_ident(s['column'])} {direction.upper()}")
    order_clause = ("ORDER BY " + ", ".join(order)) if order else ""

    params["limit"] = int(limit)
    params["offset"] = int(offset)
    sql = " ".join(
        part for part in (
            f"SELECT * FROM {_quote_fqn(schema, table)}",
            where_clause,
            order_clause,
            "LIMIT :limit OFFSET :offset",
        ) if part
    )
    return sql, params


def _parse_timestamp(s: str) -> dt.datetime:
    try:
        # str(datetime) из cell_value, в т.ч. с зоной '+00:00'
        return dt.datetime.fromisoformat(s)
    except ValueError:
        pass
    for fmt in TIMESTAMP_FORMATS:
        try:
            return dt.datetime.strptime(s, fmt)
        except ValueError:
            continue
    raise UpdateError(f"invalid timestamp format: {s!r}")


def to_sql_value(value: Any, pg_type: str) -> Any:
    """
    Значение из буфера правок -> параметр для UPDATE с учётом типа колонки.
    Пустая строка для нетекстовых типов = NULL.
    """
    if value is None:
        return None

    if pg_type in JSON_TYPES:
        return json.dumps(value)

    if pg_type == "bool":
        if isinstance(value, bool):
            return value
        raise UpdateError("expected boolean for bool type")

    if isinstance(value, str):
        if value == "" and pg_type not in TEXT_TYPES:
            return None
        try:
            if pg_type in ("timestamp", "timestamptz"):
                return _parse_timestamp(value)
            if pg_type == "date":
                return dt.datetime.strptime(value, "%Y-%m-%d").date()
            if pg_type == "uuid":
                return str(uuid.UUID(value))
            if pg_type in INT_TYPES:
                return int(value)
            if pg_type in FLOAT_TYPES:
                return float(value)
            if pg_type == "numeric":
                return Decimal(value)
        except ValueError as e:
            raise UpdateError(f"invalid {pg_type} value {value!r}: {e}", cause=e) from e
        except InvalidOperation as e:
            raise UpdateError(f"invalid numeric value {value!r}", cause=e) from e
        return value

    if isinstance(value, (bool, int, float, Decimal, dt.date)):
        return value
    if isinstance(value, list) and pg_type != "vector":
        return value
    if isinstance(value, list):
        # pgvector принимает текстовый литерал '[1,2,3]'
        return "[" + ",".join(str(v) for v in value) + "]"
    raise UpdateError(f"unsupported value type for {pg_type}: {value!r}")


def _placeholder(name: str, pg_type: str) -> str:
    if pg_type in JSON_TYPES or pg_type in ("uuid", "vector"):
        return f"CAST(:{name} AS {pg_type})"
    return f":{name}"


def build_update_sql(
    schema: str,
    table: str,
    change: ChangePayload,
    column_types: Dict[str, str],
) -> Tuple[str, Dict[str, Any]]:
    """
    UPDATE одной строки: SET по changes, WHERE по pks.
    """
    updates = change.get("changes") or {}
    pks = change.get("pks") or {}
    if not updates:
        raise UpdateError("change has no updated columns")
    if not pks:
        raise UpdateError("change has no primary key")

    params: Dict[str, Any] = {}
    set_clauses = []
    where_clauses = []

    for i, (col, value) in enumerate(updates.items()):
        pg_type = column_types.get(col)
        if pg_type is None:
            raise UpdateError(f"column type not found for {col}")
        name = f"v{i}"
        params[name] = to_sql_value(value, pg_type)
        set_clauses.append(f"{_quote_ident(col)} = {_placeholder(name, pg_type)}")

    for i, (col, value) in enumerate(pks.items()):
        pg_type = column_types.get(col)
        if pg_type is None:
            raise UpdateError(f"column type not found for {col}")
        name = f"k{i}"
        params[name] = to_sql_value(value, pg_type)
        where_clauses.append(f"{_quote_ident(col)} = {_placeholder(name, pg_type)}")

    sql = (
        f"UPDATE {_quote_fqn(schema, table)} SET {', '.join(set_clauses)} "
        f"WHERE {' AND '.join(where_clauses)}"
    )
    return sql, params


def cell_value(value: Any, pg_type: str) -> Any:
    """
    Значение ячейки из драйвера -> значение для отображения/буфера правок.
    Даты и время — строками, vector — списком float, json — как есть.
    """
    if value is None:
        return None
    if isinstance(value, (bool, int, float, dict)):
        return value
    if isinstance(value, list):
        return value
    if pg_type == "vector" and isinstance(value, str):
        body = value.strip().lstrip("[").rstrip("]")
        try:
            return [float(x) for x in body.split(",") if x.strip()]
        except ValueError:
            return value
    if isinstance(value, dt.datetime):
        return str(value)
    if isinstance(value, dt.date):
        return value.isoformat()
    if isinstance(value, (bytes, memoryview)):
        return "\\x" + bytes(value).hex()
    return str(value)


class PostgresTableSource(BaseTableSource):
    """
    реализация BaseTableSource для PostgreSQL.
    каталог читаем через сырой psycopg2 cursor, данные и UPDATE — через SQLAlchemy.
    """

    def __init__(self, connect_timeout: Optional[int] = None):
        self.connect_timeout = connect_timeout

    def _engine(self, uri: str) -> Engine:
        return get_engine(uri, connect_timeout=self.connect_timeout)

    @contextmanager
    def _cursor(self, uri: str) -> Iterator[Any]:
        engine = self._engine(uri)
        try:
            raw = engine.raw_connection()
        except SQLAlchemyError as e:
            raise _translate(e, DbConnectionError) from e
        try:
            # read-only SELECT'ы каталога
            raw.autocommit = True
            cur = raw.cursor()
            try:
                yield cur
            finally:
                cur.close()
        finally:
            raw.close()

    def _catalog(self, uri: str, sql: str, params: tuple, error: Type[TableEditorError]) -> List[tuple]:
        try:
            with self._cursor(uri) as cur:
                cur.execute(sql, params or None)
                return cur.fetchall()
        except (psycopg2.Error, SQLAlchemyError) as e:
            logger.error("[db] catalog query failed on %s: %s", mask_uri(uri), e)
            raise _translate(e, error) from e

    # --- API из BaseTableSource -------------------------------------------------

    def list_schemas(self, uri: str) -> List[str]:
        sql = """
            SELECT nspname
            FROM pg_catalog.pg_namespace
            WHERE nspname NOT IN ('pg_catalog', 'information_schema')
              AND nspname NOT LIKE 'pg_toast%'
              AND nspname NOT LIKE 'pg_temp_%'
            ORDER BY nspname
        """
        rows = self._catalog(uri, sql, (), DbConnectionError)
        return [r[0] for r in rows]

    def list_tables(self, uri: str, schema: str) -> List[str]:
        sql = """
            SELECT c.relname
            FROM pg_catalog.pg_class c
            JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
            WHERE c.relkind = 'r'
              AND n.nspname = %s
            ORDER BY c.relname
        """
        rows = self._catalog(uri, sql, (schema,), QueryError)
        return [r[0] for r in rows]

    def get_primary_keys(self, uri: str, schema: str, table: str) -> List[str]:
        sql = """
            SELECT kcu.column_name
            FROM information_schema.key_column_usage AS kcu
            JOIN information_schema.table_constraints AS tc
              ON kcu.constraint_name = tc.constraint_name
             AND kcu.table_schema    = tc.table_schema
            WHERE tc.constraint_type = 'PRIMARY KEY'
              AND kcu.table_schema = %s
              AND kcu.table_name   = %s
            ORDER BY kcu.ordinal_position
        """
        rows = self._catalog(uri, sql, (schema, table), QueryError)
        return [r[0] for r in rows]

    def list_columns(self, uri: str, schema: str, table: str) -> List[ColumnInfo]:
        """
        Колонки с udt_name и nullability, в порядке ordinal_position.
        """
        sql = """
            SELECT column_name, udt_name, is_nullable
            FROM information_schema.columns
            WHERE table_schema = %s AND table_name = %s
            ORDER BY ordinal_position
        """
        rows = self._catalog(uri, sql, (schema, table), QueryError)
        return [ColumnInfo(name=r[0], type=r[1], nullable=(r[2] == "YES")) for r in rows]

    def get_column_types(self, uri: str, schema: str, table: str) -> Dict[str, str]:
        return {c["name"]: c["type"] for c in self.list_columns(uri, schema, table)}

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
        columns = self.list_columns(uri, schema, table)
        if not columns:
            raise QueryError(f"Table {schema}.{table} not found or has no columns")
        types = [c["type"] for c in columns]

        sql, params = build_select_sql(
            schema, table, [c["name"] for c in columns],
            limit, offset, filters, logical_operator, sorts,
        )
        logger.debug("[db] %s %s", sql, params)
        try:
            with self._engine(uri).connect() as conn:
                res = conn.execute(text(sql), params)
                rows = [
                    tuple(cell_value(v, t) for v, t in zip(r, types))
                    for r in res
                ]
        except SQLAlchemyError as e:
            raise _translate(e, QueryError) from e

        return TableData(columns=columns, rows=rows)

    def update_rows(
        self,
        uri: str,
        schema: str,
        table: str,
        changes: List[ChangePayload],
    ) -> None:
        try:
            column_types = self.get_column_types(uri, schema, table)
        except QueryError as e:
            raise UpdateError(str(e), cause=e) from e

        # одна транзакция на всю пачку: любая ошибка -> rollback всего
        try:
            with self._engine(uri).begin() as conn:
                for change in changes:
                    if not change.get("changes"):
                        continue
                    sql, params = build_update_sql(schema, table, change, column_types)
                    res = conn.execute(text(sql), params)
                    if res.rowcount == 0:
                        raise UpdateError(f"row not found for key {change['pks']!r}")
        except TableEditorError:
            raise
        except SQLAlchemyError as e:
            raise _translate(e, UpdateError) from e

        logger.info("[db] updated %d row(s) in %s", len(changes), _quote_fqn(schema, table))
