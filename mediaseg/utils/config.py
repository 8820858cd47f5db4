from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULTS: Dict[str, Any] = {
    "video": {"interval_ms": 300},
    "segmentation": {"model": "deeplabv3", "delegate": "cpu"},
    "overlay": {"alpha": 0.5},
    "runtime": {
        "output_dir": "results",
        "log_level": "INFO",
        "save_output": True,
        "save_metrics": True,
        "hud": True,
    },
}


def load_yaml(path: str | Path) -> Dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path.resolve()}")
    with config_path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config {config_path} must contain a mapping")
    return data


def merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(path: Optional[str | Path] = None) -> Dict[str, Any]:
    """Defaults overlaid with the YAML file at ``path`` (if any)."""
    if path is None:
        return deepcopy(DEFAULTS)
    return merge(DEFAULTS, load_yaml(path))


def get(cfg: Dict[str, Any], key: str, default: Any = None) -> Any:
    """
    Dot-access helper:
      get(cfg, "video.interval_ms", 300)
    """
    cur: Any = cfg
    for part in key.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur
