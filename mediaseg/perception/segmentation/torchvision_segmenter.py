import time
from typing import Callable, Dict, Tuple

import numpy as np
import torch
from torchvision.models import segmentation as seg_models

from mediaseg.perception.segmentation.base_segmenter import BaseSegmenter

# name -> (builder, weights enum)
MODELS: Dict[str, Tuple[Callable, object]] = {
    "deeplabv3": (
        seg_models.deeplabv3_mobilenet_v3_large,
        seg_models.DeepLabV3_MobileNet_V3_Large_Weights.DEFAULT,
    ),
    "lraspp": (
        seg_models.lraspp_mobilenet_v3_large,
        seg_models.LRASPP_MobileNet_V3_Large_Weights.DEFAULT,
    ),
    "fcn": (
        seg_models.fcn_resnet50,
        seg_models.FCN_ResNet50_Weights.DEFAULT,
    ),
}

IMAGENET_MEAN = (0.485, 0.456, 0.406)
IMAGENET_STD = (0.229, 0.224, 0.225)


class TorchvisionSegmenter(BaseSegmenter):
    """
    Semantic segmentation with torchvision's pretrained models.
    All of them predict the 21 Pascal VOC categories (class 0 = background).
    """

    def __init__(self, model_name: str = "deeplabv3", device: str = "cpu"):
        if model_name not in MODELS:
            raise ValueError(f"Unknown segmentation model {model_name!r}; choose from {sorted(MODELS)}")
        builder, weights = MODELS[model_name]
        self.model_name = model_name
        self.device = device
        self.labels = list(weights.meta["categories"])
        self.model = builder(weights=weights)
        self.model.to(self.device)
        self.model.eval()
        self._mean = torch.tensor(IMAGENET_MEAN, device=self.device).view(1, 3, 1, 1)
        self._std = torch.tensor(IMAGENET_STD, device=self.device).view(1, 3, 1, 1)

    @torch.no_grad()
    def infer(self, frame: np.ndarray) -> dict:
        """
        Args:
            frame: RGB image (H, W, 3), uint8

        Returns:
            dict with keys:
              - mask: (H, W) uint8 class ids
              - confidence: float, mean of the per-pixel max probability
              - latency_ms: float
              - labels: category names indexed by class id
        """
        start = time.perf_counter()
        img = torch.from_numpy(frame).permute(2, 0, 1).float() / 255.0
        img = img.unsqueeze(0).to(self.device)
        img = (img - self._mean) / self._std

        output = self.model(img)["out"]
        probs = torch.softmax(output, dim=1)
        max_probs, classes = probs.max(dim=1)
        mask = classes.squeeze(0).to(torch.uint8).cpu().numpy()
        confidence = max_probs.mean().item()

        latency_ms = (time.perf_counter() - start) * 1000.0
        return {
            "mask": mask,
            "confidence": float(confidence),
            "latency_ms": latency_ms,
            "labels": self.labels,
        }

    def close(self) -> None:
        self.model = None
        if self.device == "cuda":
            torch.cuda.empty_cache()
