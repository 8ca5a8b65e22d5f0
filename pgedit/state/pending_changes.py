"""
Буфер несохранённых правок (PendingChangeStore).

Одна запись Change на строку (по первичному ключу). Правки одной строки
сливаются; если колонку вернули к исходному значению — она убирается,
пустой Change удаляется целиком.
"""
from __future__ import annotations
import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pgedit.extractors.base import ChangePayload
from pgedit.state.cell_values import same_value, value_text

logger = logging.getLogger(__name__)

PrimaryKey = Dict[str, Any]
Row = Dict[str, Any]


def primary_key_of(row: Mapping[str, Any], pk_columns: Iterable[str]) -> PrimaryKey:
    """{pk_col: row[pk_col]} для строки."""
    return {pk: row.get(pk) for pk in pk_columns}


def _identity(pks: Mapping[str, Any]) -> Tuple[Tuple[str, str], ...]:
    # структурное равенство без учёта порядка ключей
    return tuple(sorted(
        (k, json.dumps(v, sort_keys=True, default=str))
        for k, v in pks.items()
    ))


@dataclass
class Change:
    pks: PrimaryKey
    changes: Dict[str, Any]
    original: Row = field(default_factory=dict)

    def to_payload(self) -> ChangePayload:
        return ChangePayload(
            pks=copy.deepcopy(self.pks),
            changes=copy.deepcopy(self.changes),
            original=copy.deepcopy(self.original),
        )


class PendingChangeStore:
    def __init__(self):
        # identity(pks) -> Change, порядок вставки сохраняется
        self._changes: Dict[Tuple, Change] = {}
        # растёт при каждом clear(): по нему apply понимает, что буфер уже чужой
        self.generation = 0

    def __len__(self) -> int:
        return len(self._changes)

    def __bool__(self) -> bool:
        return bool(self._changes)

    def __iter__(self):
        return iter(list(self._changes.values()))

    def find_by_primary_key(self, pks: Mapping[str, Any]) -> Optional[Change]:
        return self._changes.get(_identity(pks))

    def record_edit(
        self,
        pks: Mapping[str, Any],
        column_id: str,
        new_value: Any,
        current_row: Mapping[str, Any],
    ) -> Optional[Change]:
        """
        Записать правку ячейки.

        current_row — строка в том виде, как она сейчас на экране. Для первой
        правки строки она ещё чистая (Change нет), её и берём как original.
        Возвращает актуальный Change или None, если правок по строке не осталось.
        """
        key = _identity(pks)
        existing = self._changes.get(key)

        if existing is None:
            original = dict(current_row)
            if column_id in original and same_value(original[column_id], new_value):
                # правка в то же значение — ничего не записываем
                return None
            change = Change(pks=dict(pks), changes={column_id: new_value}, original=original)
            self._changes[key] = change
            logger.debug("[buffer] new change for %s: %s", change.pks, column_id)
            return change

        if column_id in existing.original and value_text(existing.original[column_id]) == value_text(new_value):
            existing.changes.pop(column_id, None)
        else:
            existing.changes[column_id] = new_value

        if not existing.changes:
            del self._changes[key]
            logger.debug("[buffer] change for %s cancelled", existing.pks)
            return None
        return existing

    def discard(self, pks: Mapping[str, Any]) -> None:
        """Выкинуть все правки строки."""
        self._changes.pop(_identity(pks), None)

    def clear(self) -> None:
        self._changes.clear()
        self.generation += 1

    def list(self) -> List[Change]:
        return list(self._changes.values())

    def snapshot(self) -> List[ChangePayload]:
        """Глубокая копия содержимого для отправки в update_rows."""
        return [c.to_payload() for c in self._changes.values()]

    def remove_submitted(self, submitted: Iterable[ChangePayload]) -> None:
        """
        После успешного коммита убрать отправленное.
        Если строку успели поправить ещё раз, пока шёл запрос, — оставляем
        только колонки с новыми значениями, original становится отправленным
        состоянием строки.
        """
        for payload in submitted:
            key = _identity(payload["pks"])
            current = self._changes.get(key)
            if current is None:
                continue
            committed = dict(current.original)
            committed.update(payload["changes"])
            left = {
                col: val for col, val in current.changes.items()
                if col not in committed or not same_value(committed[col], val)
            }
            if left:
                current.changes = left
                current.original = committed
            else:
                del self._changes[key]
