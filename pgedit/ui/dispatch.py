import queue
import tkinter as tk
from typing import Callable


class TkDispatcher:
    """
    Перенос колбэков из фоновых потоков в главный поток tk:
    потоки кладут функции в очередь, главный цикл разбирает её по after().
    """

    def __init__(self, root: tk.Misc, interval_ms: int = 30):
        self.root = root
        self.interval_ms = interval_ms
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue()
        self._poll()

    def __call__(self, fn: Callable[[], None]) -> None:
        self._queue.put(fn)

    def _poll(self) -> None:
        try:
            while True:
                try:
                    fn = self._queue.get_nowait()
                except queue.Empty:
                    break
                fn()
        finally:
            self.root.after(self.interval_ms, self._poll)
