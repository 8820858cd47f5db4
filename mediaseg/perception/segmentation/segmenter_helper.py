from __future__ import annotations

import time
from typing import Callable, Optional, Protocol

import numpy as np
import torch

from mediaseg.perception.segmentation.base_segmenter import BaseSegmenter
from mediaseg.perception.segmentation.torchvision_segmenter import TorchvisionSegmenter
from mediaseg.utils.logger import get_logger
from mediaseg.utils.timing import elapsed_ms
from mediaseg.utils.types import Delegate, ResultBundle, RunningMode, SegmentationResult

OTHER_ERROR = 0
GPU_ERROR = 1

DEFAULT_MODEL = "deeplabv3"

SegmenterFactory = Callable[[str, str], BaseSegmenter]

logger = get_logger(__name__)


class GpuUnavailableError(RuntimeError):
    pass


class SegmenterListener(Protocol):
    def on_results(self, result_bundle: ResultBundle) -> None:
        ...

    def on_error(self, error: str, error_code: int = OTHER_ERROR) -> None:
        ...


def resolve_device(delegate: Delegate) -> str:
    if delegate == Delegate.CPU:
        return "cpu"
    if torch.cuda.is_available():
        return "cuda"
    mps = getattr(torch.backends, "mps", None)
    if mps is not None and mps.is_available():
        return "mps"
    raise GpuUnavailableError("GPU delegate requested but neither CUDA nor MPS is available")


class SegmenterHelper:
    """
    Owns one segmentation model for a single running mode and reports every
    inference to a listener. Blocking; call it from a worker thread.

    Initialization and inference failures never raise: they are reported
    through ``listener.on_error`` and leave the helper closed.
    """

    def __init__(
        self,
        delegate: Delegate = Delegate.CPU,
        running_mode: RunningMode = RunningMode.IMAGE,
        listener: Optional[SegmenterListener] = None,
        model_name: str = DEFAULT_MODEL,
        segmenter_factory: SegmenterFactory = TorchvisionSegmenter,
    ):
        self.delegate = Delegate(delegate)
        self.running_mode = running_mode
        self.listener = listener
        self.model_name = model_name
        self.segmenter_factory = segmenter_factory
        self.device: Optional[str] = None
        self._segmenter: Optional[BaseSegmenter] = None
        self._last_timestamp_ms: Optional[int] = None
        self.setup_segmenter()

    def setup_segmenter(self) -> None:
        try:
            self.device = resolve_device(self.delegate)
            self._segmenter = self.segmenter_factory(self.model_name, self.device)
        except GpuUnavailableError as exc:
            logger.error("Segmenter failed to load: %s", exc)
            self._report_error("GPU is not supported on this device", GPU_ERROR)
            return
        except (RuntimeError, ValueError, OSError) as exc:
            logger.error("Segmenter failed to load model %s on %s: %s", self.model_name, self.device, exc)
            code = GPU_ERROR if self.delegate == Delegate.GPU else OTHER_ERROR
            self._report_error("Image segmenter failed to initialize. See error logs for details", code)
            return
        self._last_timestamp_ms = None
        logger.info("Segmenter ready: model=%s device=%s mode=%s", self.model_name, self.device, self.running_mode.value)

    def segment(self, image: np.ndarray) -> Optional[ResultBundle]:
        if self.running_mode != RunningMode.IMAGE:
            raise ValueError("Attempting to call segment while not using RunningMode.IMAGE")
        return self._run(image, None)

    def segment_video_frame(self, image: np.ndarray, timestamp_ms: int) -> Optional[ResultBundle]:
        if self.running_mode != RunningMode.VIDEO:
            raise ValueError("Attempting to call segment_video_frame while not using RunningMode.VIDEO")
        if self._last_timestamp_ms is not None and timestamp_ms <= self._last_timestamp_ms:
            raise ValueError(
                f"Video timestamps must increase monotonically: {timestamp_ms} <= {self._last_timestamp_ms}"
            )
        self._last_timestamp_ms = timestamp_ms
        return self._run(image, timestamp_ms)

    def _run(self, image: np.ndarray, timestamp_ms: Optional[int]) -> Optional[ResultBundle]:
        segmenter = self._segmenter
        if segmenter is None:
            logger.debug("Segmenter is closed; dropping frame (ts=%s)", timestamp_ms)
            return None

        start = time.perf_counter()
        try:
            out = segmenter.infer(image)
        except Exception as exc:
            logger.error("Segmentation failed: %s", exc)
            self._report_error(str(exc) or "Segmentation failed", OTHER_ERROR)
            return None
        inference_time_ms = elapsed_ms(start)

        height, width = image.shape[:2]
        bundle = ResultBundle(
            results=SegmentationResult(
                category_mask=out["mask"],
                confidence=float(out.get("confidence", 0.0)),
                labels=list(out.get("labels") or segmenter.labels),
            ),
            inference_time_ms=inference_time_ms,
            width=width,
            height=height,
            input_image=image,
            timestamp_ms=timestamp_ms,
        )
        listener = self.listener
        if listener is not None:
            listener.on_results(bundle)
        return bundle

    def _report_error(self, message: str, code: int) -> None:
        self.clear_segmenter()
        listener = self.listener
        if listener is not None:
            listener.on_error(message, code)

    def clear_listener(self) -> None:
        self.listener = None

    def clear_segmenter(self) -> None:
        segmenter, self._segmenter = self._segmenter, None
        if segmenter is not None:
            segmenter.close()

    close = clear_segmenter

    def is_closed(self) -> bool:
        return self._segmenter is None
