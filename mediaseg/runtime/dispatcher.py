from __future__ import annotations

from typing import Callable, List, Optional

import numpy as np

from mediaseg.inputs.frame_sampler import VIDEO_INTERVAL_MS
from mediaseg.perception.segmentation.segmenter_helper import SegmenterHelper
from mediaseg.runtime.executor import ScheduledTask, SingleThreadScheduledExecutor
from mediaseg.utils.logger import get_logger
from mediaseg.utils.types import SampledFrame


class InferenceDispatcher:
    """
    Feeds pixel buffers to a SegmenterHelper on the session's worker.

    The dispatcher never waits for results: the helper reports them to its
    listener. ``helper_ref`` is read on every submission so a torn-down
    session (helper cleared) turns pending ticks into no-ops.
    """

    def __init__(
        self,
        executor: SingleThreadScheduledExecutor,
        helper_ref: Callable[[], Optional[SegmenterHelper]],
        interval_ms: int = VIDEO_INTERVAL_MS,
    ):
        self.executor = executor
        self.helper_ref = helper_ref
        self.interval_ms = int(interval_ms)
        self.logger = get_logger(__name__)
        self.submitted = 0
        self._task: Optional[ScheduledTask] = None

    def submit_image(self, image: np.ndarray) -> None:
        self.executor.execute(lambda: self._segment_image(image))

    def _segment_image(self, image: np.ndarray) -> None:
        helper = self.helper_ref()
        if helper is None:
            return
        self.submitted += 1
        helper.segment(image)

    def submit_video_sequence(self, frames: List[SampledFrame]) -> Optional[ScheduledTask]:
        """One submission per frame at the sampling cadence; shuts the worker down after the last."""
        if self.executor.is_shutdown():
            self.logger.debug("Worker already shut down; dropping %d frames", len(frames))
            return None
        if not frames:
            self.logger.info("Empty frame sequence; nothing to segment")
            self.executor.shutdown()
            return None

        frame_index = 0

        def tick() -> None:
            nonlocal frame_index
            helper = self.helper_ref()
            if helper is None:
                self._stop()
                return
            frame = frames[frame_index]
            self.submitted += 1
            helper.segment_video_frame(frame.image, frame.timestamp_ms)
            frame_index += 1
            if frame_index >= len(frames):
                self._stop()

        try:
            self._task = self.executor.schedule_at_fixed_rate(tick, 0.0, self.interval_ms / 1000.0)
        except RuntimeError:
            # Torn down between the check above and scheduling.
            self.logger.debug("Worker shut down while scheduling; dropping %d frames", len(frames))
            return None
        self.logger.info("Scheduled %d frames every %dms", len(frames), self.interval_ms)
        return self._task

    def _stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
        self.executor.shutdown()
