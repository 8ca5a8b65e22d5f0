from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Sequence

from pgedit.extractors.base import ColumnInfo
from pgedit.state.pending_changes import PendingChangeStore, PrimaryKey, primary_key_of


@dataclass(frozen=True)
class DisplayRow:
    values: Dict[str, Any]                 # значения с наложенными правками
    pks: PrimaryKey = field(default_factory=dict)   # ключ по исходной (не правленной) строке
    pending: FrozenSet[str] = frozenset()  # колонки с несохранёнными правками
    source: Dict[str, Any] = field(default_factory=dict)  # строка как пришла из БД

    def is_pending(self, column: str) -> bool:
        return column in self.pending


def rows_to_dicts(columns: Sequence[ColumnInfo], rows: Sequence[Sequence[Any]]) -> List[Dict[str, Any]]:
    """Кортежи из get_table_data -> dict'ы {колонка: значение} в порядке колонок."""
    names = [c["name"] for c in columns]
    return [dict(zip(names, r)) for r in rows]


def materialize(
    fetched_rows: Sequence[Dict[str, Any]],
    store: PendingChangeStore,
    primary_key_columns: Sequence[str],
) -> List[DisplayRow]:
    """
    Накладывает буфер правок на свежие строки. Чистая функция, store не меняет;
    пересчитывать при любом изменении выборки или буфера.
    """
    out: List[DisplayRow] = []
    for row in fetched_rows:
        if not primary_key_columns:
            out.append(DisplayRow(values=dict(row), source=dict(row)))
            continue
        pks = primary_key_of(row, primary_key_columns)
        change = store.find_by_primary_key(pks)
        if change is None:
            out.append(DisplayRow(values=dict(row), pks=pks, source=dict(row)))
            continue
        values = dict(row)
        values.update(change.changes)
        out.append(DisplayRow(
            values=values,
            pks=pks,
            pending=frozenset(change.changes),
            source=dict(row),
        ))
    return out
