from __future__ import annotations

import abc
from typing import List

import numpy as np


class BaseSegmenter(abc.ABC):
    labels: List[str] = []

    @abc.abstractmethod
    def infer(self, frame: np.ndarray) -> dict:
        """
        Input:
            frame: RGB image (H, W, 3), uint8
        Output:
            {
              "mask": np.ndarray (H, W)   # class IDs
              "confidence": float
              "latency_ms": float
              "labels": List[str]
            }
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release model resources. Optional."""
