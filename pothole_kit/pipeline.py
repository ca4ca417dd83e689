from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .config import DetectorConfig
from .decode import ArrayLike, decode_batch
from .distance import DistanceEstimator
from .errors import ConfigurationError
from .filters import filter_candidates
from .nms import suppress
from .types import Detection


@dataclass(frozen=True)
class StageCounts:
    """
    How many detections survived each stage of one `run()` call.
    """

    decoded: int
    above_threshold: int
    after_filter: int
    after_nms: int
    returned: int


@dataclass(frozen=True)
class PipelineResult:
    detections: List[Detection]
    stats: StageCounts


class DetectionPipeline:
    """
    Raw model output -> final detections:

        decode -> confidence + geometric filter -> NMS -> (distance) -> sort -> top `max_results`

    Holds nothing but its config, so one instance can be reused for every frame.
    An empty list means "no potholes in this frame", never "detector unavailable".
    """

    def __init__(self, cfg: Optional[DetectorConfig] = None):
        self.cfg = cfg if cfg is not None else DetectorConfig()
        self.distance = DistanceEstimator(
            known_real_height=self.cfg.known_real_height,
            calibration_factor=self.cfg.calibration_factor,
            min_distance=self.cfg.min_distance,
            max_distance=self.cfg.max_distance,
        )

    def run(
        self,
        raw_output: ArrayLike,
        image_width: int,
        image_height: int,
        *,
        with_distance: bool = False,
    ) -> PipelineResult:
        if image_width <= 0 or image_height <= 0:
            raise ConfigurationError(f"Image size must be positive (got {image_width}x{image_height})")

        cfg = self.cfg
        batch = decode_batch(raw_output, cfg.num_candidates, cfg.channels_per_candidate)
        above = int((batch.scores >= cfg.confidence_threshold).sum())

        filtered = filter_candidates(
            batch,
            cfg.confidence_threshold,
            image_width,
            image_height,
            min_box_dim=cfg.min_box_dim,
            max_area_ratio=cfg.max_area_ratio,
            labels=cfg.labels,
        )
        kept = suppress(filtered, cfg.iou_threshold, class_agnostic=cfg.class_agnostic_nms)
        if with_distance:
            kept = self.distance.annotate(kept)

        detections = sorted(kept, key=lambda d: d.confidence, reverse=True)[: cfg.max_results]

        stats = StageCounts(
            decoded=len(batch),
            above_threshold=above,
            after_filter=len(filtered),
            after_nms=len(kept),
            returned=len(detections),
        )
        return PipelineResult(detections=detections, stats=stats)

    def detect(
        self,
        raw_output: ArrayLike,
        image_width: int,
        image_height: int,
        *,
        with_distance: bool = False,
    ) -> List[Detection]:
        return self.run(raw_output, image_width, image_height, with_distance=with_distance).detections

    def __call__(self, raw_output: ArrayLike, image_width: int, image_height: int) -> List[Detection]:
        return self.detect(raw_output, image_width, image_height)


def detect(
    raw_output: ArrayLike,
    image_width: int,
    image_height: int,
    cfg: Optional[DetectorConfig] = None,
    *,
    with_distance: bool = False,
) -> List[Detection]:
    return DetectionPipeline(cfg).detect(raw_output, image_width, image_height, with_distance=with_distance)
