import argparse
import time
from statistics import mean, quantiles

import numpy as np

from mediaseg.perception.segmentation.segmenter_helper import SegmenterHelper
from mediaseg.utils.types import Delegate, RunningMode


class _Collector:
    def __init__(self):
        self.times_ms = []
        self.errors = []

    def on_results(self, result_bundle):
        self.times_ms.append(result_bundle.inference_time_ms)

    def on_error(self, error, error_code=0):
        self.errors.append((error, error_code))


def main():
    parser = argparse.ArgumentParser(description="Time segmentation on synthetic frames")
    parser.add_argument("--model", default="deeplabv3")
    parser.add_argument("--delegate", default="cpu")
    parser.add_argument("--frames", type=int, default=20)
    parser.add_argument("--size", type=int, nargs=2, default=(480, 640), metavar=("H", "W"))
    args = parser.parse_args()

    collector = _Collector()
    helper = SegmenterHelper(
        delegate=Delegate.parse(args.delegate),
        running_mode=RunningMode.VIDEO,
        listener=collector,
        model_name=args.model,
    )
    if helper.is_closed():
        print("Segmenter failed to load:", collector.errors)
        return

    rng = np.random.default_rng(0)
    start = time.time()
    for i in range(args.frames):
        frame = rng.integers(0, 256, size=(args.size[0], args.size[1], 3), dtype=np.uint8)
        helper.segment_video_frame(frame, timestamp_ms=i * 300)
    helper.close()

    times = collector.times_ms
    results = {
        "frames": len(times),
        "latency_ms_mean": round(mean(times), 1) if times else None,
        "latency_ms_p50": quantiles(times, n=100)[49] if len(times) > 1 else None,
        "latency_ms_p95": quantiles(times, n=100)[94] if len(times) > 1 else None,
    }
    print("Benchmark results", results)
    print("Elapsed", time.time() - start)


if __name__ == "__main__":
    main()
