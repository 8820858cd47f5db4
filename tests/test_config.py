import pytest

from mediaseg.runtime.view_model import MainViewModel
from mediaseg.utils.config import get, load_config, load_yaml
from mediaseg.utils.types import Delegate


def test_defaults_without_file():
    cfg = load_config()
    assert get(cfg, "video.interval_ms") == 300
    assert get(cfg, "segmentation.delegate") == "cpu"
    assert get(cfg, "missing.key", "fallback") == "fallback"


def test_file_overrides_defaults(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text("video:\n  interval_ms: 100\nsegmentation:\n  model: lraspp\n", encoding="utf-8")
    cfg = load_config(path)
    assert get(cfg, "video.interval_ms") == 100
    assert get(cfg, "segmentation.model") == "lraspp"
    assert get(cfg, "segmentation.delegate") == "cpu"


def test_missing_config_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_yaml(tmp_path / "nope.yaml")


def test_non_mapping_config_raises(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_yaml(path)


def test_view_model_parses_delegates():
    vm = MainViewModel()
    assert vm.current_delegate == Delegate.CPU
    vm.set_delegate("gpu")
    assert vm.current_delegate == Delegate.GPU
    vm.set_delegate(0)
    assert vm.current_delegate == Delegate.CPU
