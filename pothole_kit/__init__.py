"""
Post-processing for a single-class YOLO road pothole detector.

Turns the raw (C, N) output tensor into filtered, deduplicated detections with a
rough distance estimate. The core (decode, filters, nms, distance, pipeline)
needs only NumPy; OpenCV and the inference runtimes are imported on use.
"""

from .types import BoundingBox, Detection, RawCandidate
from .errors import ConfigurationError
from .config import DetectorConfig, load_detector_config
from .decode import CandidateBatch, check_output_shape, decode, decode_batch
from .filters import filter_candidates
from .nms import iou, nms, suppress
from .distance import DistanceEstimator, estimate_distance
from .pipeline import DetectionPipeline, PipelineResult, StageCounts, detect
from .preprocess import fit_to_max_dimension, prepare_input
from .runtime import FrameGate, PotholeDetector, acquire_interpreter, load_detector, open_backend
from .visualize import draw_detections

__all__ = [
    "BoundingBox",
    "Detection",
    "RawCandidate",
    "ConfigurationError",
    "DetectorConfig",
    "load_detector_config",
    "CandidateBatch",
    "decode",
    "decode_batch",
    "check_output_shape",
    "filter_candidates",
    "iou",
    "nms",
    "suppress",
    "DistanceEstimator",
    "estimate_distance",
    "DetectionPipeline",
    "PipelineResult",
    "StageCounts",
    "detect",
    "prepare_input",
    "fit_to_max_dimension",
    "FrameGate",
    "PotholeDetector",
    "acquire_interpreter",
    "load_detector",
    "open_backend",
    "draw_detections",
]
