from typing import Dict, List

import cv2
import numpy as np

BACKGROUND = 0


def resize_mask(mask: np.ndarray, width: int, height: int) -> np.ndarray:
    """Nearest-neighbour resize so class ids are never blended."""
    if mask.shape[:2] == (height, width):
        return mask
    return cv2.resize(mask, (width, height), interpolation=cv2.INTER_NEAREST)


def class_coverage(mask: np.ndarray, labels: List[str], min_fraction: float = 0.0) -> Dict[str, float]:
    """
    Fraction of the frame covered by each non-background class.

    Args:
        mask: (H, W) int class ids
        labels: category names indexed by class id

    Returns:
        {label: fraction} sorted by fraction, descending
    """
    total = mask.size
    if total == 0:
        return {}
    ids, counts = np.unique(mask, return_counts=True)
    coverage = {}
    for cls, count in zip(ids.tolist(), counts.tolist()):
        if cls == BACKGROUND:
            continue
        fraction = count / total
        if fraction < min_fraction:
            continue
        name = labels[cls] if cls < len(labels) else f"class_{cls}"
        coverage[name] = round(fraction, 4)
    return dict(sorted(coverage.items(), key=lambda kv: kv[1], reverse=True))
