from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import List, Optional

import numpy as np


class MediaType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    UNKNOWN = "UNKNOWN"


class Delegate(IntEnum):
    CPU = 0
    GPU = 1

    @classmethod
    def parse(cls, value: "int | str | Delegate") -> "Delegate":
        if isinstance(value, str):
            return cls[value.strip().upper()]
        return cls(int(value))


class RunningMode(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class SessionState(str, Enum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    RUNNING = "RUNNING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class MediaRef:
    path: Path
    mime_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: str | Path) -> "MediaRef":
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(path=path, mime_type=mime_type)


@dataclass
class VideoMeta:
    duration_ms: int
    width: int
    height: int
    fps: float


@dataclass
class SampledFrame:
    timestamp_ms: int
    image: np.ndarray  # RGB uint8 (H, W, 3)


@dataclass
class SegmentationResult:
    category_mask: np.ndarray  # (H, W) uint8 class ids
    confidence: float = 0.0
    labels: List[str] = field(default_factory=list)


@dataclass
class ResultBundle:
    results: SegmentationResult
    inference_time_ms: int
    width: int
    height: int
    input_image: Optional[np.ndarray] = None
    timestamp_ms: Optional[int] = None
