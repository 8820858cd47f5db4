import numpy as np
import pytest

from mediaseg.perception.segmentation.segmenter_helper import (
    GPU_ERROR,
    OTHER_ERROR,
    SegmenterHelper,
    resolve_device,
)
from mediaseg.utils.types import Delegate, RunningMode


class Listener:
    def __init__(self):
        self.results = []
        self.errors = []

    def on_results(self, result_bundle):
        self.results.append(result_bundle)

    def on_error(self, error, error_code=OTHER_ERROR):
        self.errors.append((error, error_code))


def _image(h=8, w=10):
    return np.zeros((h, w, 3), dtype=np.uint8)


def test_image_mode_delivers_one_bundle(fake_segmenter_factory):
    listener = Listener()
    helper = SegmenterHelper(listener=listener, segmenter_factory=fake_segmenter_factory)
    assert helper.device == "cpu"
    assert not helper.is_closed()

    bundle = helper.segment(_image())
    assert listener.results == [bundle]
    assert (bundle.width, bundle.height) == (10, 8)
    assert bundle.results.category_mask.shape == (8, 10)
    assert bundle.results.labels == ["background", "person"]
    assert isinstance(bundle.inference_time_ms, int)
    assert bundle.timestamp_ms is None


def test_wrong_running_mode_raises(fake_segmenter_factory):
    image_helper = SegmenterHelper(running_mode=RunningMode.IMAGE, segmenter_factory=fake_segmenter_factory)
    with pytest.raises(ValueError):
        image_helper.segment_video_frame(_image(), 0)

    video_helper = SegmenterHelper(running_mode=RunningMode.VIDEO, segmenter_factory=fake_segmenter_factory)
    with pytest.raises(ValueError):
        video_helper.segment(_image())


def test_video_timestamps_must_increase(fake_segmenter_factory):
    listener = Listener()
    helper = SegmenterHelper(running_mode=RunningMode.VIDEO, listener=listener, segmenter_factory=fake_segmenter_factory)
    helper.segment_video_frame(_image(), 0)
    helper.segment_video_frame(_image(), 300)
    with pytest.raises(ValueError):
        helper.segment_video_frame(_image(), 300)
    assert [b.timestamp_ms for b in listener.results] == [0, 300]


def test_gpu_init_failure_reports_gpu_error():
    def factory(model_name, device):
        raise RuntimeError("delegate not supported")

    listener = Listener()
    helper = SegmenterHelper(delegate=Delegate.GPU, listener=listener, segmenter_factory=factory)
    assert helper.is_closed()
    assert len(listener.errors) == 1
    assert listener.errors[0][1] == GPU_ERROR


def test_cpu_init_failure_reports_other_error():
    def factory(model_name, device):
        raise ValueError("unknown model")

    listener = Listener()
    helper = SegmenterHelper(listener=listener, segmenter_factory=factory)
    assert helper.is_closed()
    assert listener.errors[0][1] == OTHER_ERROR


def test_inference_failure_is_reported_not_raised(fake_segmenter):
    listener = Listener()
    helper = SegmenterHelper(
        listener=listener,
        segmenter_factory=lambda name, device: fake_segmenter(name, device, fail_with=RuntimeError("out of memory")),
    )
    assert helper.segment(_image()) is None
    assert listener.errors == [("out of memory", OTHER_ERROR)]
    assert listener.results == []


def test_unexpected_inference_exception_is_reported(fake_segmenter):
    listener = Listener()
    helper = SegmenterHelper(
        running_mode=RunningMode.VIDEO,
        listener=listener,
        segmenter_factory=lambda name, device: fake_segmenter(name, device, fail_with=KeyError("out")),
    )
    assert helper.segment_video_frame(_image(), 0) is None
    assert len(listener.errors) == 1
    assert listener.errors[0][1] == OTHER_ERROR
    assert helper.is_closed()


def test_closed_helper_drops_frames(fake_segmenter_factory):
    listener = Listener()
    helper = SegmenterHelper(listener=listener, segmenter_factory=fake_segmenter_factory)
    helper.clear_segmenter()
    assert helper.is_closed()
    assert fake_segmenter_factory.created[0].closed
    assert helper.segment(_image()) is None
    assert listener.results == []


def test_cleared_listener_gets_nothing(fake_segmenter_factory):
    listener = Listener()
    helper = SegmenterHelper(listener=listener, segmenter_factory=fake_segmenter_factory)
    helper.clear_listener()
    assert helper.segment(_image()) is not None
    assert listener.results == []


def test_resolve_device_cpu():
    assert resolve_device(Delegate.CPU) == "cpu"
