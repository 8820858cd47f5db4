from __future__ import annotations

import argparse
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import cv2
import numpy as np
from rich.console import Console
from tqdm import tqdm

from mediaseg.runtime.controller import GalleryController
from mediaseg.runtime.main_thread import MainThread
from mediaseg.runtime.view_model import MainViewModel
from mediaseg.utils.config import get, load_config
from mediaseg.utils.logger import setup_logger
from mediaseg.utils.types import Delegate, MediaRef, MediaType, SessionState
from mediaseg.visualization.display import DisplaySurface


def make_run_dir(base_dir: str | Path) -> Path:
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = Path(base_dir) / f"run_{ts}"
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


class OutputWriter:
    """Writes rendered composites: one PNG for an image, an MP4 for a video."""

    def __init__(self, run_dir: Path, fps: float):
        self.run_dir = run_dir
        self.fps = fps
        self.media_type = MediaType.UNKNOWN
        self.last_frame: Optional[np.ndarray] = None
        self.writer = None
        self.path: Optional[Path] = None

    def __call__(self, frame: np.ndarray) -> None:
        self.last_frame = frame
        if self.media_type != MediaType.VIDEO:
            return
        bgr = cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)
        if self.writer is None:
            h, w = bgr.shape[:2]
            self.path = self.run_dir / "output.mp4"
            fourcc = cv2.VideoWriter_fourcc(*"mp4v")
            self.writer = cv2.VideoWriter(str(self.path), fourcc, self.fps, (w, h))
            if not self.writer.isOpened():
                raise RuntimeError("Could not open VideoWriter (mp4v). Try a different codec/container.")
        self.writer.write(bgr)

    def close(self) -> Optional[Path]:
        if self.writer is not None:
            self.writer.release()
            self.writer = None
        elif self.media_type == MediaType.IMAGE and self.last_frame is not None:
            self.path = self.run_dir / "output.png"
            cv2.imwrite(str(self.path), cv2.cvtColor(self.last_frame, cv2.COLOR_RGB2BGR))
        return self.path


def pump(controller: GalleryController, main_thread: MainThread, poll_s: float = 0.05) -> None:
    """Drain main-thread callbacks until the session settles."""
    bar = None
    seen = 0
    try:
        while controller.busy or main_thread.pending():
            main_thread.process_pending(timeout=poll_s)
            session = controller.session
            if session is None or session.expected_results is None:
                continue
            if bar is None:
                bar = tqdm(total=session.expected_results, desc="Segmenting", unit="frame")
            bar.update(session.received_results - seen)
            seen = session.received_results
    finally:
        if bar is not None:
            bar.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Segment an image or video and overlay the class mask")
    parser.add_argument("--config", default=None, help="Path to YAML config (defaults built in)")
    parser.add_argument("--input", required=True, help="Path to input image or video")
    parser.add_argument("--delegate", choices=[d.name.lower() for d in Delegate], default=None, help="Compute backend")
    parser.add_argument("--model", default=None, help="Segmentation model: deeplabv3, lraspp or fcn")
    args = parser.parse_args(argv)

    cfg: Dict[str, Any] = load_config(args.config)

    save_output = bool(get(cfg, "runtime.save_output", True))
    save_metrics = bool(get(cfg, "runtime.save_metrics", True))
    run_dir = make_run_dir(get(cfg, "runtime.output_dir", "results"))
    logger = setup_logger(log_dir=run_dir, level=get(cfg, "runtime.log_level", "INFO"))

    console = Console()
    console.print(f"[bold]mediaseg[/bold] run dir: {run_dir}")

    view_model = MainViewModel()
    view_model.set_delegate(args.delegate or get(cfg, "segmentation.delegate", "cpu"))
    view_model.set_model(args.model or get(cfg, "segmentation.model", "deeplabv3"))

    main_thread = MainThread()
    display = DisplaySurface()
    controller = GalleryController(cfg, view_model, display, main_thread, logger=logger)

    interval_ms = controller.interval_ms
    writer = OutputWriter(run_dir, fps=1000.0 / interval_ms)
    if save_output:
        display.add_render_listener(writer)

    ref = MediaRef.from_path(args.input)
    logger.info("Input: %s (%s)", ref.path, ref.mime_type)
    writer.media_type = controller.select_media(ref)
    pump(controller, main_thread)

    final_state = controller.state
    records = list(controller.records)
    controller.on_pause()
    main_thread.process_pending()
    output_path = writer.close() if save_output else None

    for notice in display.notices:
        console.print(f"[yellow]{notice}[/yellow]")

    if save_metrics:
        metrics = {
            "input": {"path": str(ref.path), "mime_type": ref.mime_type, "media_type": writer.media_type.value},
            "delegate": view_model.current_delegate.name,
            "model": view_model.current_model,
            "interval_ms": interval_ms,
            "state": final_state.value,
            "error": controller.last_error,
            "results": records,
        }
        metrics_path = run_dir / "metrics.json"
        metrics_path.write_text(json.dumps(metrics, indent=2), encoding="utf-8")
        logger.info("Saved metrics: %s", metrics_path)

    if output_path is not None:
        logger.info("Saved output: %s", output_path)

    logger.info("Done.")
    return 0 if final_state != SessionState.ERROR and writer.media_type != MediaType.UNKNOWN else 1


if __name__ == "__main__":
    raise SystemExit(main())
