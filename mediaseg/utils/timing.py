from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional


@contextmanager
def timing(label: str, logger: Optional[logging.Logger] = None) -> Iterator[None]:
    start = time.perf_counter()
    yield
    duration_ms = (time.perf_counter() - start) * 1000
    (logger or logging.getLogger("mediaseg")).info("%s took %.2f ms", label, duration_ms)


def elapsed_ms(start_ts: float) -> int:
    return int((time.perf_counter() - start_ts) * 1000.0)


@dataclass
class FPSMeter:
    """Exponential moving average FPS estimator."""

    smoothing: float = 0.9
    fps: float = 0.0
    _last_ts: float = field(default_factory=time.perf_counter)

    def tick(self) -> float:
        now = time.perf_counter()
        dt = max(now - self._last_ts, 1e-9)
        inst_fps = 1.0 / dt
        self.fps = inst_fps if self.fps <= 0 else (self.smoothing * self.fps + (1 - self.smoothing) * inst_fps)
        self._last_ts = now
        return self.fps

    def reset(self) -> None:
        self.fps = 0.0
        self._last_ts = time.perf_counter()
