from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from mediaseg.utils.logger import get_logger
from mediaseg.utils.types import MediaRef, MediaType

logger = get_logger(__name__)


def classify(ref: MediaRef) -> MediaType:
    """Map the declared content type of ``ref`` onto a MediaType."""
    mime_type = ref.mime_type
    if mime_type:
        if mime_type.startswith("image"):
            return MediaType.IMAGE
        if mime_type.startswith("video"):
            return MediaType.VIDEO
    return MediaType.UNKNOWN


def to_rgb888(frame: np.ndarray, bgr: bool = True) -> np.ndarray:
    """
    Normalize a decoded frame into the pixel format inference expects.

    Args:
        frame: (H, W), (H, W, 1), (H, W, 3) or (H, W, 4) array, any of
            uint8 / uint16 / float (float assumed in [0, 1]).
        bgr: channel order of 3/4-channel input (OpenCV decodes to BGR).

    Returns:
        RGB uint8 (H, W, 3), C-contiguous. Input already in that format
        is returned without copying.
    """
    if frame.dtype == np.uint16:
        frame = (frame >> 8).astype(np.uint8)
    elif frame.dtype != np.uint8:
        frame = np.clip(frame.astype(np.float32) * 255.0, 0, 255).astype(np.uint8)

    if frame.ndim == 3 and frame.shape[2] == 1:
        frame = frame[:, :, 0]

    if frame.ndim == 2:
        frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2RGB)
    elif frame.shape[2] == 4:
        frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2RGB if bgr else cv2.COLOR_RGBA2RGB)
    elif bgr:
        frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    if not frame.flags["C_CONTIGUOUS"]:
        frame = np.ascontiguousarray(frame)
    return frame


def decode_image(ref: MediaRef) -> Optional[np.ndarray]:
    if not ref.path.exists():
        logger.warning("Image %s not found", ref.path)
        return None
    try:
        raw = cv2.imread(str(ref.path), cv2.IMREAD_UNCHANGED)
    except cv2.error as exc:
        logger.warning("Could not decode image %s: %s", ref.path, exc)
        return None
    if raw is None or raw.size == 0:
        logger.warning("Could not decode image %s", ref.path)
        return None
    return to_rgb888(raw, bgr=True)
