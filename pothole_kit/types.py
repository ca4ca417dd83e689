from dataclasses import dataclass, replace
from typing import Optional, Tuple


@dataclass(frozen=True)
class RawCandidate:
    """
    One decoded output slot of the model, before any filtering.

    Box values are normalized to the model input size.
    """

    cx: float
    cy: float
    w: float
    h: float
    confidence: float
    class_id: int = 0


@dataclass(frozen=True)
class BoundingBox:
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def area(self) -> float:
        return self.width * self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.left, self.top, self.right, self.bottom


@dataclass(frozen=True)
class Detection:
    """
    Detection in original image pixel coordinates.

    `distance` is None until a distance estimate has been attached.
    """

    box: BoundingBox
    label: str
    confidence: float
    distance: Optional[float] = None
    class_id: int = 0

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.box.as_xyxy()

    def with_distance(self, distance: float) -> "Detection":
        return replace(self, distance=float(distance))
