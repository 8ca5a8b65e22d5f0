"""
Асинхронные выборки с отбрасыванием устаревших ответов.

Каждая выборка помечена видом (kind) и ключом — полным набором параметров.
Когда ответ приходит, его отдают в on_done только если ключ всё ещё
актуален; иначе ответ молча выбрасывается. Отмены нет.
"""
from __future__ import annotations
import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)

Dispatch = Callable[[Callable[[], None]], None]


def _call_now(fn: Callable[[], None]) -> None:
    fn()


class KeyedFetcher:
    def __init__(self, executor: Optional[Executor] = None, dispatch: Optional[Dispatch] = None):
        self.executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="pgedit-fetch")
        # dispatch переносит колбэк в UI-поток (для tk — очередь + after)
        self.dispatch: Dispatch = dispatch or _call_now
        self._issued: Dict[str, Hashable] = {}

    def fetch(
        self,
        kind: str,
        key: Hashable,
        fn: Callable[[], Any],
        on_done: Callable[[Any], None],
        current: Optional[Callable[[], Hashable]] = None,
    ) -> Future:
        """
        Запустить fn в фоне. on_done(result) вызовется в UI-потоке, если
        к этому моменту key всё ещё последний выданный для kind и (если задан)
        совпадает с current().
        """
        self._issued[kind] = key
        logger.debug("[fetch] %s issued %r", kind, key)
        future = self.executor.submit(fn)
        future.add_done_callback(
            lambda fut: self.dispatch(lambda: self._deliver(kind, key, fut, on_done, current))
        )
        return future

    def run(self, fn: Callable[[], Any], on_done: Callable[[Any], None]) -> Future:
        """Фоновая операция без ключа (apply): результат доставляется всегда."""
        future = self.executor.submit(fn)
        future.add_done_callback(lambda fut: self.dispatch(lambda: on_done(fut.result())))
        return future

    def is_current(self, kind: str, key: Hashable) -> bool:
        return self._issued.get(kind) == key

    def invalidate(self, *kinds: str) -> None:
        """Забыть выданные ключи: ответы на них будут выброшены."""
        for kind in kinds or list(self._issued):
            self._issued.pop(kind, None)

    def _deliver(self, kind, key, fut: Future, on_done, current) -> None:
        if not self.is_current(kind, key) or (current is not None and current() != key):
            logger.debug("[fetch] %s stale response dropped %r", kind, key)
            return
        on_done(fut.result())

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False)
