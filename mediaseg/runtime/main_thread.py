from __future__ import annotations

import queue
import threading
from typing import Callable, Optional


class MainThread:
    """
    FIFO channel into the thread that owns display state.

    Workers ``post`` callbacks; the owner drains them with
    ``process_pending``. Whoever constructs the channel owns it.
    """

    def __init__(self) -> None:
        self._owner = threading.current_thread()
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue()

    def is_main_thread(self) -> bool:
        return threading.current_thread() is self._owner

    def post(self, fn: Callable[[], None]) -> None:
        self._queue.put(fn)

    def run_on_ui_thread(self, fn: Callable[[], None]) -> None:
        if self.is_main_thread():
            fn()
        else:
            self.post(fn)

    def pending(self) -> int:
        return self._queue.qsize()

    def process_pending(self, timeout: Optional[float] = None) -> int:
        """
        Run queued callbacks on the owner thread.

        Blocks up to ``timeout`` seconds for the first callback (``None`` or
        0 means don't wait), then drains whatever is queued. Returns the
        number of callbacks run.
        """
        if not self.is_main_thread():
            raise RuntimeError("process_pending must be called from the main thread")
        ran = 0
        try:
            fn = self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return ran
        while True:
            fn()
            ran += 1
            try:
                fn = self._queue.get_nowait()
            except queue.Empty:
                return ran
