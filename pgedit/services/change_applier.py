import logging
from typing import Any, Callable, Dict, Optional

from pgedit.services.fetcher import KeyedFetcher
from pgedit.services.table_service import TableService
from pgedit.state.pending_changes import PendingChangeStore

logger = logging.getLogger(__name__)


class ChangeApplier:
    """
    Коммит буфера правок одной пачкой.

    Успех: отправленные правки убираются из буфера и выборка повторяется
    с тем же QuerySpec. Ошибка: буфер не трогаем, ошибку отдаём наверх,
    повторной попытки нет. Защиты от двойного нажатия тут нет — кнопку
    блокирует UI по in_flight.
    """

    def __init__(self, service: TableService, fetcher: KeyedFetcher, refetch: Callable[[], None]):
        self.service = service
        self.fetcher = fetcher
        self.refetch = refetch
        self.in_flight = 0

    def apply(
        self,
        uri: str,
        schema: str,
        table: str,
        store: PendingChangeStore,
        on_done: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> None:
        submitted = store.snapshot()
        if not submitted:
            if on_done:
                on_done({"ok": True, "value": 0, "error": None, "duration_ms": 0})
            return

        logger.info("[apply] submitting %d change(s) to %s.%s", len(submitted), schema, table)
        self.in_flight += 1
        generation = store.generation

        def finish(result: Dict[str, Any]) -> None:
            self.in_flight -= 1
            if result["ok"] and store.generation != generation:
                # буфер успели очистить (смена таблицы) — в нём правки другой таблицы
                logger.info("[apply] committed %d change(s) to %s.%s, buffer was reset meanwhile",
                            len(submitted), schema, table)
                result = {**result, "value": len(submitted)}
            elif result["ok"]:
                # правки, сделанные во время запроса, остаются для следующего apply
                store.remove_submitted(submitted)
                logger.info("[apply] committed %d change(s)", len(submitted))
                result = {**result, "value": len(submitted)}
                self.refetch()
            else:
                logger.error("[apply] failed, buffer kept (%d change(s)): %s", len(store), result["error"])
            if on_done:
                on_done(result)

        self.fetcher.run(lambda: self.service.update_rows(uri, schema, table, submitted), finish)
