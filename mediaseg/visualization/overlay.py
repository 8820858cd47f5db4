from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from mediaseg.perception.segmentation.postprocess import BACKGROUND, resize_mask


def label_colors(n: int = 256) -> np.ndarray:
    """Pascal VOC colormap, (n, 3) uint8 RGB. Class 0 is black."""
    palette = np.zeros((n, 3), dtype=np.uint8)
    for i in range(n):
        c = i
        r = g = b = 0
        for j in range(8):
            r |= ((c >> 0) & 1) << (7 - j)
            g |= ((c >> 1) & 1) << (7 - j)
            b |= ((c >> 2) & 1) << (7 - j)
            c >>= 3
        palette[i] = (r, g, b)
    return palette


LABEL_COLORS = label_colors()


def colorize_mask(mask: np.ndarray, palette: np.ndarray = LABEL_COLORS) -> np.ndarray:
    """(H, W) class ids -> (H, W, 3) RGB."""
    return palette[np.clip(mask.astype(np.int64), 0, len(palette) - 1)]


def blend_mask(frame: np.ndarray, mask: np.ndarray, alpha: float = 0.5, palette: np.ndarray = LABEL_COLORS) -> np.ndarray:
    """
    Alpha-blend class colors over an RGB frame. Background stays untouched.

    Args:
        frame: RGB (H, W, 3) uint8
        mask: (h, w) class ids, resized to the frame if needed
    """
    h, w = frame.shape[:2]
    mask = resize_mask(mask, w, h)
    render = frame.copy()
    fg = mask != BACKGROUND
    if not fg.any():
        return render
    colored = colorize_mask(mask, palette)
    render[fg] = (frame[fg] * (1.0 - alpha) + colored[fg] * alpha).astype(np.uint8)
    return render


def draw_hud(frame: np.ndarray, inference_ms: Optional[int], fps: Optional[float] = None) -> np.ndarray:
    """Minimal HUD with inference time and result rate."""
    render = frame.copy()
    y = 25
    if inference_ms is not None:
        cv2.putText(render, f"Inference: {inference_ms} ms", (15, y), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2)
        y += 28
    if fps:
        cv2.putText(render, f"Results/s: {fps:4.1f}", (15, y), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (220, 220, 220), 2)
    return render
