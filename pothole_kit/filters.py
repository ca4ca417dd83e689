from __future__ import annotations

from typing import List, Sequence, Union

import numpy as np

from .config import DEFAULT_LABELS
from .decode import CandidateBatch
from .errors import ConfigurationError
from .types import BoundingBox, Detection, RawCandidate


def _label_for(class_id: int, labels: Sequence[str]) -> str:
    if 0 <= class_id < len(labels):
        return labels[class_id]
    return str(class_id)


def to_pixel_boxes(boxes_cxcywh: np.ndarray, image_width: int, image_height: int) -> np.ndarray:
    """
    Normalized cx, cy, w, h -> clamped xyxy in image pixels.
    """

    cx, cy, w, h = boxes_cxcywh.T
    x1 = np.clip((cx - w / 2) * image_width, 0, image_width)
    y1 = np.clip((cy - h / 2) * image_height, 0, image_height)
    x2 = np.clip((cx + w / 2) * image_width, 0, image_width)
    y2 = np.clip((cy + h / 2) * image_height, 0, image_height)
    return np.stack([x1, y1, x2, y2], axis=1)


def filter_candidates(
    candidates: Union[CandidateBatch, Sequence[RawCandidate]],
    confidence_threshold: float,
    image_width: int,
    image_height: int,
    *,
    min_box_dim: float = 20.0,
    max_area_ratio: float = 0.8,
    labels: Sequence[str] = DEFAULT_LABELS,
) -> List[Detection]:
    """
    Drop low-confidence candidates and boxes that cannot be a real pothole.

    Rejected: width or height under `min_box_dim` pixels after clamping, or a
    box covering more than `max_area_ratio` of the frame. Survivors keep input
    order and have no distance yet.
    """

    if image_width <= 0 or image_height <= 0:
        raise ConfigurationError(f"Image size must be positive (got {image_width}x{image_height})")

    batch = candidates if isinstance(candidates, CandidateBatch) else CandidateBatch.from_candidates(candidates)
    if len(batch) == 0:
        return []

    keep = batch.scores >= confidence_threshold
    boxes, scores, class_ids = batch.boxes[keep], batch.scores[keep], batch.class_ids[keep]
    if scores.size == 0:
        return []

    xyxy = to_pixel_boxes(boxes, image_width, image_height)
    widths = xyxy[:, 2] - xyxy[:, 0]
    heights = xyxy[:, 3] - xyxy[:, 1]
    area_ratio = (widths * heights) / float(image_width * image_height)

    sane = (widths >= min_box_dim) & (heights >= min_box_dim) & (area_ratio <= max_area_ratio)
    xyxy, scores, class_ids = xyxy[sane], scores[sane], class_ids[sane]

    return [
        Detection(
            box=BoundingBox(float(x1), float(y1), float(x2), float(y2)),
            label=_label_for(int(cls_id), labels),
            confidence=float(score),
            class_id=int(cls_id),
        )
        for (x1, y1, x2, y2), score, cls_id in zip(xyxy, scores, class_ids)
    ]
