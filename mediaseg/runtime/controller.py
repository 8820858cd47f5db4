from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from mediaseg.inputs.frame_sampler import VIDEO_INTERVAL_MS, FrameSampler
from mediaseg.inputs.media_loader import classify, decode_image
from mediaseg.perception.segmentation.postprocess import class_coverage
from mediaseg.perception.segmentation.segmenter_helper import GPU_ERROR, OTHER_ERROR, SegmenterHelper
from mediaseg.runtime.dispatcher import InferenceDispatcher
from mediaseg.runtime.executor import SingleThreadScheduledExecutor
from mediaseg.runtime.main_thread import MainThread
from mediaseg.runtime.view_model import MainViewModel
from mediaseg.utils.config import get
from mediaseg.utils.logger import get_logger
from mediaseg.utils.types import Delegate, MediaRef, MediaType, ResultBundle, RunningMode, SessionState
from mediaseg.visualization.display import DisplaySurface, OverlayView

UNSUPPORTED_MESSAGE = "Unsupported data type."


@dataclass
class Session:
    generation: int
    media_type: MediaType
    ref: MediaRef
    helper: Optional[SegmenterHelper] = None
    executor: Optional[SingleThreadScheduledExecutor] = None
    dispatcher: Optional[InferenceDispatcher] = None
    expected_results: Optional[int] = None
    received_results: int = 0


class SessionListener:
    """Helper callbacks tagged with the generation of the session that created them."""

    def __init__(self, controller: "GalleryController", generation: int):
        self.controller = controller
        self.generation = generation

    def on_results(self, result_bundle: ResultBundle) -> None:
        self.controller.main_thread.post(lambda: self.controller._apply_results(self.generation, result_bundle))

    def on_error(self, error: str, error_code: int = OTHER_ERROR) -> None:
        self.controller.main_thread.post(lambda: self.controller._apply_error(self.generation, error, error_code))


class GalleryController:
    """
    Runs one media selection at a time through segmentation and presents
    the results.

    Every public method runs on the main thread. Worker and helper
    callbacks reach it only through ``main_thread.post`` and are applied
    only while the session that produced them is still the current one.
    """

    def __init__(
        self,
        cfg: Dict[str, Any],
        view_model: MainViewModel,
        display: DisplaySurface,
        main_thread: MainThread,
        helper_factory: Callable[..., SegmenterHelper] = SegmenterHelper,
        sampler_factory: Callable[[MediaRef, int], FrameSampler] = FrameSampler,
        executor_factory: Callable[[], SingleThreadScheduledExecutor] = SingleThreadScheduledExecutor,
        logger: Optional[logging.Logger] = None,
    ):
        self.cfg = cfg
        self.view_model = view_model
        self.display = display
        self.main_thread = main_thread
        self.helper_factory = helper_factory
        self.sampler_factory = sampler_factory
        self.executor_factory = executor_factory
        self.logger = logger or get_logger(__name__)
        self.interval_ms = int(get(cfg, "video.interval_ms", VIDEO_INTERVAL_MS))
        self.overlay = OverlayView(
            display,
            alpha=float(get(cfg, "overlay.alpha", 0.5)),
            hud=bool(get(cfg, "runtime.hud", True)),
        )
        self.last_error: Optional[str] = None
        self.records: List[Dict[str, Any]] = []
        self._generation = 0
        self._session: Optional[Session] = None
        self._state = SessionState.IDLE
        self._view_alive = True
        self.display.set_delegate_selection(self.view_model.current_delegate)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state in (SessionState.LOADING, SessionState.RUNNING)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def session(self) -> Optional[Session]:
        return self._session

    # ---- picker / settings events ----

    def select_media(self, ref: MediaRef) -> MediaType:
        if self._session is not None:
            self.stop_all()
        self.display.update_display_view(MediaType.UNKNOWN)

        media_type = classify(ref)
        self.logger.info("Selected %s (%s -> %s)", ref.path, ref.mime_type, media_type.value)
        if media_type == MediaType.IMAGE:
            self.run_segmentation_on_image(ref)
        elif media_type == MediaType.VIDEO:
            self.run_segmentation_on_video(ref)
        else:
            self._show_unsupported()
        return media_type

    def set_delegate(self, delegate: "int | str | Delegate") -> None:
        self.view_model.set_delegate(delegate)
        self.display.set_delegate_selection(self.view_model.current_delegate)
        self.stop_all()

    def set_model(self, model_name: str) -> None:
        self.view_model.set_model(model_name)
        self.stop_all()

    def on_pause(self) -> None:
        self.stop_all()

    def on_destroy_view(self) -> None:
        self._view_alive = False

    # ---- sessions ----

    def _show_unsupported(self) -> None:
        self.display.update_display_view(MediaType.UNKNOWN)
        self.display.show_notice(UNSUPPORTED_MESSAGE)

    def _start_session(self, ref: MediaRef, media_type: MediaType, running_mode: RunningMode) -> Session:
        self._generation += 1
        session = Session(generation=self._generation, media_type=media_type, ref=ref)
        self._session = session
        self._state = SessionState.LOADING
        self.last_error = None
        self.records = []
        session.helper = self.helper_factory(
            delegate=self.view_model.current_delegate,
            running_mode=running_mode,
            listener=SessionListener(self, session.generation),
            model_name=self.view_model.current_model,
        )
        return session

    def _current_helper(self, generation: int) -> Callable[[], Optional[SegmenterHelper]]:
        def helper_ref() -> Optional[SegmenterHelper]:
            session = self._session
            if session is None or session.generation != generation:
                return None
            return session.helper

        return helper_ref

    def _is_current(self, generation: int) -> bool:
        return self._session is not None and self._session.generation == generation

    def run_segmentation_on_image(self, ref: MediaRef) -> None:
        image = decode_image(ref)
        if image is None:
            self._show_unsupported()
            return

        self.overlay.set_running_mode(RunningMode.IMAGE)
        self.display.set_ui_enabled(False)
        self.display.update_display_view(MediaType.IMAGE)
        self.display.set_image(image)

        session = self._start_session(ref, MediaType.IMAGE, RunningMode.IMAGE)
        # A helper that is closed right after construction failed to load; its error is queued.
        if session.helper.is_closed():
            return
        session.expected_results = 1
        session.executor = self.executor_factory()
        session.dispatcher = InferenceDispatcher(session.executor, self._current_helper(session.generation), self.interval_ms)
        session.dispatcher.submit_image(image)
        self._state = SessionState.RUNNING

    def run_segmentation_on_video(self, ref: MediaRef) -> None:
        self.overlay.set_running_mode(RunningMode.VIDEO)
        self.display.set_ui_enabled(False)
        self.display.update_display_view(MediaType.VIDEO)
        self.display.set_video(ref, muted=True)
        self.display.video_visible = False
        self.display.progress_visible = True

        session = self._start_session(ref, MediaType.VIDEO, RunningMode.VIDEO)
        if session.helper.is_closed():
            return

        sampler = self.sampler_factory(ref, self.interval_ms)
        if sampler.probe() is None:
            # Unreadable duration or frame size: no frames, no inference, no notice.
            self.logger.warning("Skipping %s: video metadata unavailable", ref.path)
            self._state = SessionState.IDLE
            return

        generation = session.generation
        executor = self.executor_factory()
        dispatcher = InferenceDispatcher(executor, self._current_helper(generation), self.interval_ms)
        session.executor = executor
        session.dispatcher = dispatcher

        def sample_and_dispatch() -> None:
            frames = sampler.sample()
            self.main_thread.run_on_ui_thread(lambda: self._display_video_result(generation, len(frames)))
            dispatcher.submit_video_sequence(frames)

        executor.execute(sample_and_dispatch)

    def _display_video_result(self, generation: int, frame_count: int) -> None:
        if not self._is_current(generation) or not self._view_alive:
            return
        self.display.video_visible = True
        self.display.progress_visible = False
        self.display.start()
        self._session.expected_results = frame_count
        self._state = SessionState.RUNNING
        if frame_count == 0:
            self._finish_session()

    def _finish_session(self) -> None:
        session = self._session
        self._state = SessionState.IDLE
        if session is not None:
            self.logger.info("Session %d finished: %d result(s)", session.generation, session.received_results)

    # ---- results ----

    def _apply_results(self, generation: int, result_bundle: ResultBundle) -> None:
        if not self._view_alive or not self._is_current(generation):
            self.logger.debug("Dropping result from stale session %d", generation)
            return
        session = self._session

        self.display.set_ui_enabled(True)
        self.display.inference_time_text = "%d ms" % result_bundle.inference_time_ms
        self.overlay.set_results(result_bundle)
        self.overlay.invalidate()

        session.received_results += 1
        result = result_bundle.results
        self.records.append(
            {
                "timestamp_ms": result_bundle.timestamp_ms,
                "inference_time_ms": result_bundle.inference_time_ms,
                "confidence": round(result.confidence, 4),
                "coverage": class_coverage(result.category_mask, result.labels, min_fraction=0.01),
            }
        )
        if session.expected_results is not None and session.received_results >= session.expected_results:
            self._finish_session()

    def _apply_error(self, generation: int, error: str, error_code: int) -> None:
        if not self._is_current(generation):
            self.logger.debug("Dropping error from stale session %d: %s", generation, error)
            return
        self.logger.error("Segmentation error (code=%d): %s", error_code, error)
        self.stop_all()
        if error_code == GPU_ERROR:
            self.view_model.set_delegate(Delegate.CPU)
        if self._view_alive:
            self.display.set_ui_enabled(True)
            self.display.update_display_view(MediaType.UNKNOWN)
            self.display.show_notice(error)
            if error_code == GPU_ERROR:
                self.display.set_delegate_selection(Delegate.CPU)
        self.last_error = error
        self._state = SessionState.ERROR

    # ---- teardown ----

    def stop_all(self) -> None:
        if self.display.is_playing():
            self.display.stop_playback()
        self.overlay.clear()
        self.display.progress_visible = False
        self.display.update_display_view(MediaType.UNKNOWN)

        session, self._session = self._session, None
        if session is not None:
            self._generation += 1
            if session.executor is not None:
                session.executor.shutdown_now()
            if session.helper is not None:
                session.helper.clear_listener()
                session.helper.clear_segmenter()
            self.logger.info("Session %d stopped", session.generation)
        self._state = SessionState.IDLE
