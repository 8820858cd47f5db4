from __future__ import annotations

import heapq
import itertools
import threading
import time
from typing import Callable, List, Optional

from mediaseg.utils.logger import get_logger

logger = get_logger(__name__)


class ScheduledTask:
    """Handle for work queued on a SingleThreadScheduledExecutor."""

    def __init__(self, fn: Callable[[], None], run_at: float, period_s: Optional[float] = None):
        self.fn = fn
        self.run_at = run_at
        self.period_s = period_s
        self.runs = 0
        self._cancelled = False

    @property
    def periodic(self) -> bool:
        return self.period_s is not None

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class SingleThreadScheduledExecutor:
    """
    One daemon worker thread running one-shot and fixed-rate tasks in
    schedule order.

    shutdown() lets queued one-shot work drain but cancels periodic tasks;
    shutdown_now() drops everything queued and returns without waiting for
    the task that may be running.
    """

    def __init__(self, name: str = "mediaseg-worker"):
        self._cond = threading.Condition()
        self._queue: List[tuple] = []
        self._seq = itertools.count()
        self._shutdown = False
        self._thread = threading.Thread(target=self._loop, name=name, daemon=True)
        self._thread.start()

    def execute(self, fn: Callable[[], None]) -> ScheduledTask:
        return self._submit(ScheduledTask(fn, time.monotonic()))

    def schedule(self, fn: Callable[[], None], delay_s: float) -> ScheduledTask:
        return self._submit(ScheduledTask(fn, time.monotonic() + max(0.0, delay_s)))

    def schedule_at_fixed_rate(self, fn: Callable[[], None], initial_delay_s: float, period_s: float) -> ScheduledTask:
        if period_s <= 0:
            raise ValueError(f"period_s must be positive, got {period_s}")
        return self._submit(ScheduledTask(fn, time.monotonic() + max(0.0, initial_delay_s), period_s))

    def _submit(self, task: ScheduledTask) -> ScheduledTask:
        with self._cond:
            if self._shutdown:
                raise RuntimeError("Executor has been shut down")
            heapq.heappush(self._queue, (task.run_at, next(self._seq), task))
            self._cond.notify()
        return task

    def shutdown(self) -> None:
        with self._cond:
            if self._shutdown:
                return
            self._shutdown = True
            kept = []
            for entry in self._queue:
                task = entry[2]
                if task.periodic:
                    task.cancel()
                else:
                    kept.append(entry)
            heapq.heapify(kept)
            self._queue = kept
            self._cond.notify_all()

    def shutdown_now(self) -> int:
        with self._cond:
            dropped = 0
            for _, _, task in self._queue:
                task.cancel()
                dropped += 1
            self._queue = []
            self._shutdown = True
            self._cond.notify_all()
        if dropped:
            logger.debug("Dropped %d queued task(s) on shutdown_now", dropped)
        return dropped

    def is_shutdown(self) -> bool:
        return self._shutdown

    def is_terminated(self) -> bool:
        return self._shutdown and not self._thread.is_alive()

    def await_termination(self, timeout: Optional[float] = None) -> bool:
        if threading.current_thread() is self._thread:
            return False
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def in_worker_thread(self) -> bool:
        return threading.current_thread() is self._thread

    def _next_task(self) -> Optional[ScheduledTask]:
        with self._cond:
            while True:
                if not self._queue:
                    if self._shutdown:
                        return None
                    self._cond.wait()
                    continue
                run_at, _, task = self._queue[0]
                if task.cancelled():
                    heapq.heappop(self._queue)
                    continue
                wait_s = run_at - time.monotonic()
                if wait_s > 0:
                    self._cond.wait(wait_s)
                    continue
                heapq.heappop(self._queue)
                return task

    def _loop(self) -> None:
        while True:
            task = self._next_task()
            if task is None:
                return
            try:
                task.fn()
            except Exception:
                logger.exception("Task failed on %s", self._thread.name)
                if task.periodic:
                    task.cancel()
                continue
            finally:
                task.runs += 1
            if task.periodic and not task.cancelled():
                task.run_at += task.period_s
                with self._cond:
                    if not self._shutdown:
                        heapq.heappush(self._queue, (task.run_at, next(self._seq), task))
