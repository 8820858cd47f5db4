from __future__ import annotations

from dataclasses import dataclass

from mediaseg.perception.segmentation.segmenter_helper import DEFAULT_MODEL
from mediaseg.utils.types import Delegate


@dataclass
class MainViewModel:
    """Settings that outlive a single media session."""

    current_delegate: Delegate = Delegate.CPU
    current_model: str = DEFAULT_MODEL

    def set_delegate(self, delegate: "int | str | Delegate") -> None:
        self.current_delegate = Delegate.parse(delegate)

    def set_model(self, model_name: str) -> None:
        self.current_model = model_name
