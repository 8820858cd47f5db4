import numpy as np

from mediaseg.runtime.dispatcher import InferenceDispatcher
from mediaseg.runtime.executor import SingleThreadScheduledExecutor
from mediaseg.utils.types import SampledFrame


class RecordingHelper:
    def __init__(self):
        self.images = 0
        self.timestamps = []

    def segment(self, image):
        self.images += 1

    def segment_video_frame(self, image, timestamp_ms):
        self.timestamps.append(timestamp_ms)


def _frames(n, interval_ms=300):
    return [SampledFrame(timestamp_ms=i * interval_ms, image=np.zeros((2, 2, 3), dtype=np.uint8)) for i in range(n)]


def test_video_sequence_submits_every_frame_in_order_then_shuts_down():
    executor = SingleThreadScheduledExecutor()
    helper = RecordingHelper()
    dispatcher = InferenceDispatcher(executor, lambda: helper, interval_ms=2)

    dispatcher.submit_video_sequence(_frames(7))
    assert executor.await_termination(5)

    assert helper.timestamps == [i * 300 for i in range(7)]
    assert dispatcher.submitted == 7


def test_video_sequence_stops_when_helper_is_gone():
    executor = SingleThreadScheduledExecutor()
    helper = RecordingHelper()
    holder = {"helper": helper}

    def helper_ref():
        current = holder["helper"]
        if current is not None and len(current.timestamps) == 3:
            holder["helper"] = None
        return holder["helper"]

    dispatcher = InferenceDispatcher(executor, helper_ref, interval_ms=2)
    dispatcher.submit_video_sequence(_frames(10))
    assert executor.await_termination(5)
    assert len(helper.timestamps) == 3


def test_empty_sequence_shuts_worker_down():
    executor = SingleThreadScheduledExecutor()
    dispatcher = InferenceDispatcher(executor, RecordingHelper, interval_ms=2)
    assert dispatcher.submit_video_sequence([]) is None
    assert executor.await_termination(2)
    assert dispatcher.submitted == 0


def test_submit_image_runs_once():
    executor = SingleThreadScheduledExecutor()
    helper = RecordingHelper()
    dispatcher = InferenceDispatcher(executor, lambda: helper)
    dispatcher.submit_image(np.zeros((2, 2, 3), dtype=np.uint8))
    executor.shutdown()
    assert executor.await_termination(2)
    assert helper.images == 1
    assert dispatcher.submitted == 1


class RacingExecutor(SingleThreadScheduledExecutor):
    """Reports running on the check, then refuses the schedule as if shut down in between."""

    def is_shutdown(self):
        return False

    def schedule_at_fixed_rate(self, fn, initial_delay, period):
        raise RuntimeError("Executor has been shut down")


def test_video_sequence_dropped_when_shutdown_races_schedule():
    executor = RacingExecutor()
    helper = RecordingHelper()
    dispatcher = InferenceDispatcher(executor, lambda: helper, interval_ms=2)
    try:
        assert dispatcher.submit_video_sequence(_frames(3)) is None
        assert helper.timestamps == []
        assert dispatcher.submitted == 0
    finally:
        executor.shutdown_now()
