from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional

import cv2

from mediaseg.inputs.base_input import BaseInput
from mediaseg.inputs.media_loader import to_rgb888
from mediaseg.utils.logger import get_logger
from mediaseg.utils.timing import timing
from mediaseg.utils.types import MediaRef, SampledFrame, VideoMeta

# Frames are pulled from the video every VIDEO_INTERVAL_MS for inference.
VIDEO_INTERVAL_MS = 300


def plan_timestamps(duration_ms: int, interval_ms: int = VIDEO_INTERVAL_MS) -> List[int]:
    """Timestamps 0, I, 2I, ... up to floor(D / I) * I inclusive."""
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be positive, got {interval_ms}")
    if duration_ms < 0:
        return []
    return [i * interval_ms for i in range(duration_ms // interval_ms + 1)]


class FrameSampler(BaseInput):
    """
    Pulls one frame per sampling interval out of a video file.

    The capture is opened by ``start()``/``probe()`` and released once
    ``sample()`` has walked every planned timestamp.
    """

    def __init__(
        self,
        ref: MediaRef,
        interval_ms: int = VIDEO_INTERVAL_MS,
        capture_factory: Callable[[str], Any] = cv2.VideoCapture,
    ):
        self.ref = ref
        self.path = Path(ref.path)
        self.interval_ms = int(interval_ms)
        self.capture_factory = capture_factory
        self.logger = get_logger(__name__)
        self.cap = None
        self.meta: Optional[VideoMeta] = None
        self.frame_count = 0

    def probe(self) -> Optional[VideoMeta]:
        """Open the video and read duration plus first-frame size; None if any is missing."""
        if self.meta is not None:
            return self.meta

        self.cap = self.capture_factory(str(self.path))
        if self.cap is None or not self.cap.isOpened():
            self.logger.warning("Could not open video %s", self.path)
            self.release()
            return None

        fps = float(self.cap.get(cv2.CAP_PROP_FPS) or 0.0)
        frame_count = int(self.cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        duration_ms = int(frame_count * 1000.0 / fps) if fps > 0 and frame_count > 0 else None

        # Decoded frames can be smaller than the container header claims,
        # so take the size from the first frame.
        self.cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
        ok, first = self.cap.read()
        width = first.shape[1] if ok and first is not None else None
        height = first.shape[0] if ok and first is not None else None

        if duration_ms is None or width is None or height is None:
            self.logger.warning(
                "Video %s has unreadable metadata (duration=%s width=%s height=%s); skipping",
                self.path,
                duration_ms,
                width,
                height,
            )
            self.release()
            return None

        self.frame_count = frame_count
        self.meta = VideoMeta(duration_ms=duration_ms, width=int(width), height=int(height), fps=fps)
        self.logger.info(
            "Video opened: %s duration=%dms fps=%.2f size=%dx%d",
            self.path,
            self.meta.duration_ms,
            self.meta.fps,
            self.meta.width,
            self.meta.height,
        )
        return self.meta

    def start(self) -> None:
        self.probe()

    def frame_index(self, timestamp_ms: int) -> int:
        """Index of the frame nearest ``timestamp_ms``, clamped to the last decodable frame."""
        if self.meta is None or self.frame_count <= 0:
            return 0
        index = int(round(timestamp_ms * self.meta.fps / 1000.0))
        return max(0, min(index, self.frame_count - 1))

    def frames(self) -> Iterator[SampledFrame]:
        if self.cap is None or self.meta is None:
            return
        for timestamp_ms in plan_timestamps(self.meta.duration_ms, self.interval_ms):
            # A timestamp equal to the duration points one frame past the end.
            try:
                self.cap.set(cv2.CAP_PROP_POS_FRAMES, self.frame_index(timestamp_ms))
                ok, frame = self.cap.read()
            except cv2.error as exc:
                self.logger.warning("Decode failed at %dms in %s: %s", timestamp_ms, self.path, exc)
                continue
            if not ok or frame is None:
                self.logger.debug("No frame at %dms in %s", timestamp_ms, self.path)
                continue
            yield SampledFrame(timestamp_ms=timestamp_ms, image=to_rgb888(frame, bgr=True))

    def sample(self) -> List[SampledFrame]:
        if self.probe() is None:
            return []
        try:
            with timing(f"Sampling {self.path.name}", self.logger):
                sequence = list(self.frames())
        finally:
            self.release()
        self.logger.info("Sampled %d frames from %s every %dms", len(sequence), self.path, self.interval_ms)
        return sequence

    def release(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    def stop(self) -> None:
        self.release()
