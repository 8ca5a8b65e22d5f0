"""
Правила редактирования ячеек по типу колонки.

Тип колонки (udt_name) + форма значения -> один из CellKind.
Сравнение значений для буфера правок — только по строковой форме
(value_text), а не глубокое: для json это известное ограничение
(порядок ключей важен, 1 == "1").
dict/list сравниваются по компактному JSON, а не по "[object Object]",
поэтому два разных JSON-объекта не считаются равными.
"""
from __future__ import annotations
import datetime as dt
import json
import math
from enum import Enum
from numbers import Number
from typing import Any, Dict, List, Optional

from pgedit.db.errors import EditRejectedError


class CellKind(str, Enum):
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"
    NUMERIC = "numeric"
    STRUCTURED = "structured"
    VECTOR = "vector"
    TEXT = "text"


DATE_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
_TIMESTAMP_INPUTS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d",
)
MAX_CELL_TEXT = 50


def is_vector(value: Any) -> bool:
    """Непустой список/кортеж, где все элементы — числа (bool не считается)."""
    return (
        isinstance(value, (list, tuple))
        and len(value) > 0
        and all(isinstance(v, Number) and not isinstance(v, bool) for v in value)
    )


def parse_json_text(value: Any) -> Any:
    """
    Строка с JSON-объектом/массивом -> распарсенное значение.
    Всё остальное возвращаем как есть.
    """
    if not isinstance(value, str):
        return value
    try:
        parsed = json.loads(value)
    except ValueError:
        return value
    if isinstance(parsed, (dict, list)):
        return parsed
    return value


def classify(column_type: Optional[str], value: Any = None) -> CellKind:
    """
    Единственная точка диспетчеризации: тип колонки + форма значения -> CellKind.
    Неизвестные типы — TEXT.
    """
    t = (column_type or "").lower()
    if t == "bool" or t == "boolean":
        return CellKind.BOOLEAN
    if t == "date":
        return CellKind.DATE
    if t.startswith("timestamp"):
        return CellKind.TIMESTAMP
    if t == "vector" or is_vector(parse_json_text(value)):
        return CellKind.VECTOR
    if t.startswith("int") or t.startswith("float") or t in ("numeric", "decimal"):
        return CellKind.NUMERIC
    if t in ("json", "jsonb"):
        return CellKind.STRUCTURED
    # строка с JSON в текстовой колонке остаётся TEXT, объект от драйвера — нет
    if isinstance(value, (dict, list)):
        return CellKind.STRUCTURED
    return CellKind.TEXT


def bool_choices(nullable: bool) -> List[Optional[bool]]:
    """True/False, и NULL третьим состоянием — только для nullable колонок."""
    return [True, False, None] if nullable else [True, False]


def _parse_datetime(value: Any) -> dt.datetime:
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day)
    s = str(value).strip().rstrip("Z")
    # '2024-01-02 10:00:00+00:00' — зону отбрасываем, храним локальное время
    head, tail = s[:10], s[10:]
    for sep in ("+", "-"):
        tail = tail.split(sep, 1)[0]
    s = head + tail
    for fmt in _TIMESTAMP_INPUTS:
        try:
            return dt.datetime.strptime(s, fmt)
        except ValueError:
            continue
    raise EditRejectedError(f"Not a date/time value: {value!r}")


def canonical_date(value: Any) -> str:
    """-> 'YYYY-MM-DD'"""
    return _parse_datetime(value).strftime(DATE_FORMAT)


def canonical_timestamp(value: Any) -> str:
    """-> 'YYYY-MM-DD HH:MM:SS'"""
    return _parse_datetime(value).strftime(TIMESTAMP_FORMAT)


def coerce_input(kind: CellKind, raw: Any, nullable: bool) -> Any:
    """
    Значение из редактора -> значение для PendingChangeStore.record_edit.

    None означает "Set to NULL" и допустимо только для nullable колонок.
    """
    if raw is None:
        if not nullable:
            raise EditRejectedError("Column is NOT NULL")
        return None

    if kind is CellKind.VECTOR:
        raise EditRejectedError("Vector cells are read-only")

    if kind is CellKind.BOOLEAN:
        if isinstance(raw, bool):
            return raw
        s = str(raw).strip().lower()
        if s in ("true", "t", "1", "yes"):
            return True
        if s in ("false", "f", "0", "no"):
            return False
        if s in ("null", "") and nullable:
            return None
        raise EditRejectedError(f"Not a boolean: {raw!r}")

    if kind in (CellKind.DATE, CellKind.TIMESTAMP, CellKind.NUMERIC) and str(raw).strip() == "":
        # пустой ввод в нетекстовой колонке = NULL
        if not nullable:
            raise EditRejectedError("Column is NOT NULL")
        return None

    if kind is CellKind.DATE:
        return canonical_date(raw)

    if kind is CellKind.TIMESTAMP:
        return canonical_timestamp(raw)

    if kind is CellKind.NUMERIC:
        # число оставляем текстом (как ввёл пользователь), но проверяем
        s = str(raw).strip()
        try:
            float(s)
        except ValueError:
            raise EditRejectedError(f"Not a number: {raw!r}")
        return s

    if kind is CellKind.STRUCTURED:
        if not isinstance(raw, str):
            return raw
        try:
            return json.loads(raw)
        except ValueError as e:
            raise EditRejectedError(f"Invalid JSON: {e}")

    return raw if isinstance(raw, str) else str(raw)


def value_text(value: Any) -> str:
    """
    Строковая форма значения — единственное основание для сравнения правок.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


def same_value(a: Any, b: Any) -> bool:
    return value_text(a) == value_text(b)


def display_text(value: Any, kind: Optional[CellKind] = None, *, max_len: int = MAX_CELL_TEXT) -> str:
    """Текст ячейки для таблицы."""
    if value is None:
        return "NULL"
    kind = kind or classify(None, value)
    parsed = parse_json_text(value)
    if kind is CellKind.VECTOR and is_vector(parsed):
        return f"Vector ({len(parsed)} dimensions)"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(parsed, (dict, list)):
        s = json.dumps(parsed, ensure_ascii=False, default=str)
    else:
        s = str(value)
    s = s.replace("\n", " ")
    if max_len and len(s) > max_len:
        return s[: max_len - 1] + "…"
    return s


def vector_summary(values: List[float]) -> Dict[str, float]:
    """Сводка для просмотра вектора: размерность, min/max/mean, L2-норма."""
    if not values:
        return {"dimensions": 0, "min": 0.0, "max": 0.0, "mean": 0.0, "norm": 0.0}
    nums = [float(v) for v in values]
    return {
        "dimensions": len(nums),
        "min": min(nums),
        "max": max(nums),
        "mean": sum(nums) / len(nums),
        "norm": math.sqrt(sum(v * v for v in nums)),
    }
