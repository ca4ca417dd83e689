from __future__ import annotations

import argparse
import time
from dataclasses import dataclass
from typing import List

import numpy as np

from pothole_kit import DetectorConfig, decode_batch, filter_candidates, suppress


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    if not values_s:
        raise ValueError("No values provided.")
    ms = np.asarray(values_s, dtype=np.float64) * 1000.0
    p50, p90, p95 = np.percentile(ms, [50.0, 90.0, 95.0])
    return TimingSummary(
        n=int(ms.size),
        mean_ms=float(np.mean(ms)),
        p50_ms=float(p50),
        p90_ms=float(p90),
        p95_ms=float(p95),
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def synthetic_output(num_candidates: int, positives: int, seed: int = 0) -> np.ndarray:
    """
    Channel-major (5, N) tensor: mostly noise-level scores, `positives` confident
    slots clustered around a few centers so NMS has duplicates to remove.
    """

    rng = np.random.default_rng(seed)
    out = np.empty((5, num_candidates), dtype=np.float32)
    out[0:2] = rng.uniform(0.0, 1.0, size=(2, num_candidates))
    out[2:4] = rng.uniform(0.01, 0.3, size=(2, num_candidates))
    out[4] = rng.uniform(0.0, 0.00001, size=num_candidates)

    idx = rng.choice(num_candidates, size=min(positives, num_candidates), replace=False)
    centers = rng.uniform(0.2, 0.8, size=(4, 2))
    pick = centers[rng.integers(0, len(centers), size=idx.size)]
    out[0, idx] = pick[:, 0] + rng.normal(0, 0.005, size=idx.size)
    out[1, idx] = pick[:, 1] + rng.normal(0, 0.005, size=idx.size)
    out[2, idx] = 0.1
    out[3, idx] = 0.08
    out[4, idx] = rng.uniform(0.00002, 0.0001, size=idx.size)
    return out[None, ...]


def main() -> int:
    parser = argparse.ArgumentParser(description="Benchmark pothole post-processing stages on a synthetic tensor.")
    parser.add_argument("--candidates", type=int, default=8400, help="Output slots per frame.")
    parser.add_argument("--positives", type=int, default=40, help="Slots above the confidence threshold.")
    parser.add_argument("--width", type=int, default=640, help="Original image width.")
    parser.add_argument("--height", type=int, default=480, help="Original image height.")
    parser.add_argument("--conf", type=float, default=0.00002, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=0.3, help="IoU threshold for NMS.")
    parser.add_argument("--warmup", type=int, default=10, help="Warmup iterations to run but not record.")
    parser.add_argument("--repeats", type=int, default=200, help="Recorded iterations.")
    args = parser.parse_args()

    if args.candidates < 1:
        raise ValueError("--candidates must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    cfg = DetectorConfig(confidence_threshold=args.conf, iou_threshold=args.iou, num_candidates=args.candidates)
    preds = synthetic_output(args.candidates, args.positives)

    t_decode: List[float] = []
    t_filter: List[float] = []
    t_nms: List[float] = []
    kept = 0

    for it in range(args.warmup + args.repeats):
        t0 = time.perf_counter()
        batch = decode_batch(preds, cfg.num_candidates, cfg.channels_per_candidate)
        t1 = time.perf_counter()
        filtered = filter_candidates(
            batch,
            cfg.confidence_threshold,
            args.width,
            args.height,
            min_box_dim=cfg.min_box_dim,
            max_area_ratio=cfg.max_area_ratio,
            labels=cfg.labels,
        )
        t2 = time.perf_counter()
        kept = len(suppress(filtered, cfg.iou_threshold))
        t3 = time.perf_counter()

        if it < args.warmup:
            continue
        t_decode.append(t1 - t0)
        t_filter.append(t2 - t1)
        t_nms.append(t3 - t2)

    print(_format_summary("decode", _summarize_ms(t_decode)))
    print(_format_summary("filter", _summarize_ms(t_filter)))
    print(_format_summary("nms", _summarize_ms(t_nms)))
    print(f"candidates={args.candidates} after_filter={len(filtered)} after_nms={kept}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
