from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .types import BoundingBox, Detection


@dataclass
class NMSConfig:
    iou_threshold: float = 0.3
    # None keeps every surviving box; the pipeline applies its own result cap.
    max_detections: Optional[int] = None


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """
    Intersection-over-Union of two xyxy boxes. Returns 0.0 when the union is empty.
    """

    inter_w = max(0.0, min(a.right, b.right) - max(a.left, b.left))
    inter_h = max(0.0, min(a.bottom, b.bottom) - max(a.top, b.top))
    inter = inter_w * inter_h
    union = a.area + b.area - inter
    if union <= 0:
        return 0.0
    return inter / union


def confidence_order(scores: np.ndarray) -> np.ndarray:
    # Stable: equal scores keep their input order.
    return np.argsort(-scores, kind="stable")


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of kept boxes, highest score first.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    x1 = boxes[:, 0]
    y1 = boxes[:, 1]
    x2 = boxes[:, 2]
    y2 = boxes[:, 3]
    areas = (x2 - x1) * (y2 - y1)

    order = confidence_order(scores)
    keep = []

    while order.size > 0 and (cfg.max_detections is None or len(keep) < cfg.max_detections):
        i = order[0]
        keep.append(i)

        rest = order[1:]
        xx1 = np.maximum(x1[i], x1[rest])
        yy1 = np.maximum(y1[i], y1[rest])
        xx2 = np.minimum(x2[i], x2[rest])
        yy2 = np.minimum(y2[i], y2[rest])

        w = np.maximum(0.0, xx2 - xx1)
        h = np.maximum(0.0, yy2 - yy1)
        inter = w * h
        union = areas[i] + areas[rest] - inter
        with np.errstate(divide="ignore", invalid="ignore"):
            overlap = np.where(union > 0, inter / union, 0.0)

        order = rest[overlap <= cfg.iou_threshold]

    return np.array(keep, dtype=np.int64)


def suppress(
    detections: Sequence[Detection],
    iou_threshold: float,
    *,
    class_agnostic: bool = True,
) -> List[Detection]:
    """
    Remove overlapping duplicates, keeping the most confident box of each cluster.

    Output is sorted by confidence (descending, ties in input order). With
    `class_agnostic=False` boxes only suppress boxes of the same class.
    """

    if not detections:
        return []

    boxes = np.array([d.as_xyxy() for d in detections], dtype=np.float64)
    scores = np.array([d.confidence for d in detections], dtype=np.float64)
    cfg = NMSConfig(iou_threshold=iou_threshold)

    if class_agnostic:
        keep_idx = nms(boxes, scores, cfg)
        return [detections[int(i)] for i in keep_idx]

    class_ids = np.array([d.class_id for d in detections], dtype=np.int64)
    kept: List[int] = []
    for cls in np.unique(class_ids):
        idx = np.where(class_ids == cls)[0]
        keep_local = nms(boxes[idx], scores[idx], cfg)
        kept.extend(idx[keep_local].tolist())

    # Merge per-class survivors back into confidence order, input order on ties.
    kept_arr = np.sort(np.array(kept, dtype=np.int64))
    kept_arr = kept_arr[confidence_order(scores[kept_arr])]
    return [detections[int(i)] for i in kept_arr]
