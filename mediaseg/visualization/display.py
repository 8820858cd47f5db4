from __future__ import annotations

from typing import Callable, List, Optional

import numpy as np

from mediaseg.utils.logger import get_logger
from mediaseg.utils.timing import FPSMeter
from mediaseg.utils.types import Delegate, MediaRef, MediaType, ResultBundle, RunningMode
from mediaseg.visualization.overlay import blend_mask, draw_hud

logger = get_logger(__name__)


class DisplaySurface:
    """
    Headless stand-in for the gallery screen: visibility flags, controls,
    readouts, playback state and user notices. Only mutate it from the
    main thread.
    """

    def __init__(self) -> None:
        self.image_visible = False
        self.video_visible = False
        self.placeholder_visible = True
        self.progress_visible = False
        self.controls_enabled = True
        self.inference_time_text = ""
        self.delegate_selection = Delegate.CPU
        self.image: Optional[np.ndarray] = None
        self.video: Optional[MediaRef] = None
        self.muted = False
        self.notices: List[str] = []
        self.frames_rendered = 0
        self.last_frame: Optional[np.ndarray] = None
        self._playing = False
        self._render_listeners: List[Callable[[np.ndarray], None]] = []

    def update_display_view(self, media_type: MediaType) -> None:
        self.image_visible = media_type == MediaType.IMAGE
        self.video_visible = media_type == MediaType.VIDEO
        self.placeholder_visible = media_type == MediaType.UNKNOWN

    def set_ui_enabled(self, enabled: bool) -> None:
        self.controls_enabled = enabled

    def set_image(self, image: np.ndarray) -> None:
        self.image = image

    def set_video(self, ref: MediaRef, muted: bool = True) -> None:
        self.video = ref
        self.muted = muted

    def start(self) -> None:
        if self.video is not None:
            self._playing = True

    def stop_playback(self) -> None:
        self._playing = False

    def is_playing(self) -> bool:
        return self._playing

    def set_delegate_selection(self, delegate: Delegate) -> None:
        self.delegate_selection = delegate

    def show_notice(self, message: str) -> None:
        logger.info("Notice: %s", message)
        self.notices.append(message)

    def add_render_listener(self, listener: Callable[[np.ndarray], None]) -> None:
        self._render_listeners.append(listener)

    def render(self, frame: np.ndarray) -> None:
        self.last_frame = frame
        self.frames_rendered += 1
        for listener in self._render_listeners:
            listener(frame)


class OverlayView:
    """Draws the latest segmentation result over the media it came from."""

    def __init__(self, surface: DisplaySurface, alpha: float = 0.5, hud: bool = True):
        self.surface = surface
        self.alpha = alpha
        self.hud = hud
        self.running_mode = RunningMode.IMAGE
        self.results: Optional[ResultBundle] = None
        self.fps_meter = FPSMeter()

    def set_running_mode(self, running_mode: RunningMode) -> None:
        self.running_mode = running_mode

    def set_results(self, result_bundle: ResultBundle) -> None:
        self.results = result_bundle
        if self.running_mode == RunningMode.VIDEO:
            self.fps_meter.tick()

    def clear(self) -> None:
        self.results = None
        self.fps_meter.reset()

    def compose(self) -> Optional[np.ndarray]:
        bundle = self.results
        if bundle is None:
            return None
        base = bundle.input_image
        if base is None:
            base = np.zeros((bundle.height, bundle.width, 3), dtype=np.uint8)
        render = blend_mask(base, bundle.results.category_mask, alpha=self.alpha)
        if self.hud:
            fps = self.fps_meter.fps if self.running_mode == RunningMode.VIDEO else None
            render = draw_hud(render, bundle.inference_time_ms, fps)
        return render

    def invalidate(self) -> None:
        frame = self.compose()
        if frame is not None:
            self.surface.render(frame)
