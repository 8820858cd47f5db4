#!/usr/bin/env python3
import json
import sys
from collections import Counter
from pathlib import Path
from statistics import mean, median


def safe_mean(xs):
    xs = [x for x in xs if x is not None]
    return mean(xs) if xs else None


def main():
    if len(sys.argv) < 2:
        print("Usage: python scripts/summarize_run.py results/run_YYYYMMDD_HHMMSS")
        sys.exit(1)

    run_dir = Path(sys.argv[1])
    metrics_path = run_dir / "metrics.json"
    if not metrics_path.exists():
        raise FileNotFoundError(f"Missing: {metrics_path}")

    m = json.loads(metrics_path.read_text())
    results = m.get("results", [])
    n = len(results)

    print("\n================ MEDIASEG RUN SUMMARY ================")
    print(f"Run dir:  {run_dir}")
    print(f"Input:    {m.get('input', {}).get('path')} ({m.get('input', {}).get('media_type')})")
    print(f"Model:    {m.get('model')} on {m.get('delegate')}")
    print(f"State:    {m.get('state')}")
    if m.get("error"):
        print(f"Error:    {m['error']}")
    print(f"Results:  {n}")
    if n == 0:
        print("======================================================\n")
        return

    inf_ms = [r.get("inference_time_ms") for r in results if r.get("inference_time_ms") is not None]
    if inf_ms:
        print(f"Inference (ms) avg={mean(inf_ms):.1f}  med={median(inf_ms):.1f}  min={min(inf_ms)}  max={max(inf_ms)}")
    conf = safe_mean([r.get("confidence") for r in results])
    print(f"Confidence avg: {conf:.3f}" if conf is not None else "Confidence: (missing)")

    seen = Counter()
    for r in results:
        seen.update((r.get("coverage") or {}).keys())
    print("\nClasses present (results containing class):")
    for label, count in seen.most_common():
        print(f"  {label:12s}: {count:4d} ({100.0 * count / n:.1f}%)")
    print("======================================================\n")


if __name__ == "__main__":
    main()
