import time

import cv2
import numpy as np
import pytest

from mediaseg.perception.segmentation.base_segmenter import BaseSegmenter
from mediaseg.perception.segmentation.segmenter_helper import SegmenterHelper


class FakeSegmenter(BaseSegmenter):
    """Marks the left half of every frame as class 1 ("person")."""

    labels = ["background", "person"]

    def __init__(self, model_name="fake", device="cpu", fail_with=None):
        self.model_name = model_name
        self.device = device
        self.fail_with = fail_with
        self.calls = 0
        self.closed = False

    def infer(self, frame):
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        h, w = frame.shape[:2]
        mask = np.zeros((h, w), dtype=np.uint8)
        mask[:, : w // 2] = 1
        return {"mask": mask, "confidence": 0.9, "latency_ms": 1.0, "labels": self.labels}

    def close(self):
        self.closed = True


class FakeCapture:
    """cv2.VideoCapture stand-in that serves a frame for any position within the clip."""

    def __init__(self, path, fps=100.0, frame_count=10, size=(24, 32), opened=True, first_frame=True):
        self.path = path
        self.fps = fps
        self.frame_count = frame_count
        self.size = size
        self.opened = opened
        self.first_frame = first_frame
        self.pos_ms = 0.0
        self.reads = []
        self.released = False

    def isOpened(self):
        return self.opened

    def get(self, prop):
        if prop == cv2.CAP_PROP_FPS:
            return self.fps
        if prop == cv2.CAP_PROP_FRAME_COUNT:
            return self.frame_count
        return 0.0

    def set(self, prop, value):
        if prop == cv2.CAP_PROP_POS_MSEC:
            self.pos_ms = value
        elif prop == cv2.CAP_PROP_POS_FRAMES:
            self.pos_ms = value * 1000.0 / self.fps if self.fps else 0.0
        return True

    def read(self):
        # Like OpenCV, nothing decodes at or past the clip duration.
        duration_ms = self.frame_count * 1000.0 / self.fps if self.fps else 0
        if self.pos_ms >= duration_ms or (self.pos_ms == 0 and not self.first_frame):
            return False, None
        self.reads.append(self.pos_ms)
        h, w = self.size
        frame = np.zeros((h, w, 3), dtype=np.uint8)
        frame[:, :, 0] = 255  # blue in BGR
        return True, frame

    def release(self):
        self.released = True


@pytest.fixture
def fake_segmenter_factory():
    created = []

    def factory(model_name, device):
        seg = FakeSegmenter(model_name, device)
        created.append(seg)
        return seg

    factory.created = created
    return factory


@pytest.fixture
def helper_factory(fake_segmenter_factory):
    helpers = []

    def factory(**kwargs):
        helper = SegmenterHelper(segmenter_factory=fake_segmenter_factory, **kwargs)
        helpers.append(helper)
        return helper

    factory.helpers = helpers
    return factory


@pytest.fixture
def fake_capture():
    return FakeCapture


@pytest.fixture
def fake_segmenter():
    return FakeSegmenter


@pytest.fixture
def pump():
    def drain(main_thread, until, timeout=5.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            main_thread.process_pending(timeout=0.01)
            if until():
                main_thread.process_pending()
                return True
        return False

    return drain


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "photo.png"
    img = np.zeros((40, 60, 3), dtype=np.uint8)
    img[:, :, 2] = 200  # red in BGR
    assert cv2.imwrite(str(path), img)
    return path
