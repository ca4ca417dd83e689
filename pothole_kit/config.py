from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from .errors import ConfigurationError


# INT8 exports emit much smaller confidences than the float model (roughly 1e-5..1e-4),
# so this is a per-artifact value, not a probability.
INT8_CONFIDENCE_THRESHOLD = 0.00002
DEFAULT_LABELS: Tuple[str, ...] = ("jalan_berlubang",)


@dataclass(frozen=True)
class DetectorConfig:
    """
    All tunables of the post-processing pipeline in one place.

    - confidence_threshold: candidates strictly below this are dropped
    - iou_threshold: NMS suppresses pairs with IoU strictly above this
    - max_results: cap on returned detections per frame
    - num_candidates/channels_per_candidate: model output layout (C, N)
    - min_box_dim/max_area_ratio: geometric sanity limits in pixels / fraction of image
    - known_real_height/calibration_factor/min_distance/max_distance: distance heuristic
    """

    confidence_threshold: float = INT8_CONFIDENCE_THRESHOLD
    iou_threshold: float = 0.3
    max_results: int = 5
    num_candidates: int = 8400
    channels_per_candidate: int = 5
    min_box_dim: float = 20.0
    max_area_ratio: float = 0.8
    known_real_height: float = 0.5
    calibration_factor: float = 100.0
    min_distance: float = 0.5
    max_distance: float = 50.0
    class_agnostic_nms: bool = True
    labels: Tuple[str, ...] = DEFAULT_LABELS

    def __post_init__(self) -> None:
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ConfigurationError("iou_threshold must be in [0, 1]")
        if self.max_results < 1:
            raise ConfigurationError("max_results must be >= 1")
        if self.num_candidates < 1:
            raise ConfigurationError("num_candidates must be >= 1")
        if self.channels_per_candidate < 5:
            raise ConfigurationError("channels_per_candidate must be >= 5 (cx, cy, w, h, score...)")
        if self.min_box_dim < 0:
            raise ConfigurationError("min_box_dim must be >= 0")
        if not 0.0 < self.max_area_ratio <= 1.0:
            raise ConfigurationError("max_area_ratio must be in (0, 1]")
        if self.known_real_height <= 0:
            raise ConfigurationError("known_real_height must be > 0")
        if self.calibration_factor <= 0:
            raise ConfigurationError("calibration_factor must be > 0")
        if not 0.0 <= self.min_distance <= self.max_distance:
            raise ConfigurationError("distance bounds must satisfy 0 <= min_distance <= max_distance")
        if not self.labels:
            raise ConfigurationError("labels must not be empty")

    @property
    def num_classes(self) -> int:
        return self.channels_per_candidate - 4

    def replace(self, **overrides: Any) -> "DetectorConfig":
        return replace(self, **overrides)


_FLOAT_KEYS = {
    "confidence_threshold",
    "iou_threshold",
    "min_box_dim",
    "max_area_ratio",
    "known_real_height",
    "calibration_factor",
    "min_distance",
    "max_distance",
}
_INT_KEYS = {"max_results", "num_candidates", "channels_per_candidate"}


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{key} must be an integer")
    return int(value)


def detector_config_from_dict(payload: Dict[str, Any]) -> DetectorConfig:
    allowed = {f.name for f in fields(DetectorConfig)}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ConfigurationError(f"Unknown detector config keys: {unknown}")

    kwargs: Dict[str, Any] = {}
    for key in payload:
        if key in _FLOAT_KEYS:
            kwargs[key] = _require_number(payload, key)
        elif key in _INT_KEYS:
            kwargs[key] = _require_int(payload, key)
        elif key == "class_agnostic_nms":
            if not isinstance(payload[key], bool):
                raise ConfigurationError("class_agnostic_nms must be a boolean")
            kwargs[key] = payload[key]
        elif key == "labels":
            labels = payload[key]
            if isinstance(labels, str):
                labels = [labels]
            if not isinstance(labels, list) or not all(isinstance(item, str) for item in labels):
                raise ConfigurationError("labels must be a string or list of strings")
            kwargs[key] = tuple(labels)

    return DetectorConfig(**kwargs)


def load_detector_config(path: Union[str, Path]) -> DetectorConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Detector config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid detector config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError("Detector config must be a JSON object")
    return detector_config_from_dict(payload)
