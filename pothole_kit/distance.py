from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from .types import BoundingBox, Detection


def estimate_distance(
    box: BoundingBox,
    known_real_height: float = 0.5,
    *,
    calibration_factor: float = 100.0,
    min_box_size: float = 5.0,
    min_distance: float = 0.5,
    max_distance: float = 50.0,
) -> float:
    """
    Rough monocular distance (meters) from the apparent size of a box.

        distance = known_real_height * calibration_factor / max(box.height, box.width)

    `calibration_factor` stands in for focal length and sensor calibration and is
    tuned empirically. Boxes under `min_box_size` pixels return 0.0; every other
    result is clamped to [min_distance, max_distance].
    """

    # Larger side, so the estimate does not depend on how the pothole is oriented.
    box_size = max(box.height, box.width)
    if box_size < min_box_size:
        return 0.0

    distance = (known_real_height * calibration_factor) / box_size
    return float(min(max(distance, min_distance), max_distance))


@dataclass(frozen=True)
class DistanceEstimator:
    known_real_height: float = 0.5
    calibration_factor: float = 100.0
    min_box_size: float = 5.0
    min_distance: float = 0.5
    max_distance: float = 50.0

    def estimate(self, box: BoundingBox) -> float:
        return estimate_distance(
            box,
            self.known_real_height,
            calibration_factor=self.calibration_factor,
            min_box_size=self.min_box_size,
            min_distance=self.min_distance,
            max_distance=self.max_distance,
        )

    def annotate(self, detections: Sequence[Detection]) -> List[Detection]:
        return [det.with_distance(self.estimate(det.box)) for det in detections]
