from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Sequence, Union

import numpy as np

from .errors import ConfigurationError
from .types import RawCandidate


ArrayLike = Union[np.ndarray, Sequence[float]]


@dataclass(frozen=True)
class CandidateBatch:
    """
    Column view of decoded candidates, one row per output slot.

    - boxes: (N, 4) normalized cx, cy, w, h
    - scores: (N,) raw confidence
    - class_ids: (N,) argmax class index
    """

    boxes: np.ndarray
    scores: np.ndarray
    class_ids: np.ndarray

    def __len__(self) -> int:
        return int(self.scores.shape[0])

    @classmethod
    def from_candidates(cls, candidates: Sequence[RawCandidate]) -> "CandidateBatch":
        if not candidates:
            return cls(
                boxes=np.empty((0, 4), dtype=np.float64),
                scores=np.empty((0,), dtype=np.float64),
                class_ids=np.empty((0,), dtype=np.int64),
            )
        boxes = np.array([[c.cx, c.cy, c.w, c.h] for c in candidates], dtype=np.float64)
        scores = np.array([c.confidence for c in candidates], dtype=np.float64)
        class_ids = np.array([c.class_id for c in candidates], dtype=np.int64)
        return cls(boxes=boxes, scores=scores, class_ids=class_ids)

    def to_candidates(self) -> List[RawCandidate]:
        return [
            RawCandidate(
                cx=float(cx),
                cy=float(cy),
                w=float(w),
                h=float(h),
                confidence=float(score),
                class_id=int(cls_id),
            )
            for (cx, cy, w, h), score, cls_id in zip(self.boxes, self.scores, self.class_ids)
        ]


def _as_channel_major(raw_output: ArrayLike, num_candidates: int, channels_per_candidate: int) -> np.ndarray:
    if num_candidates < 1:
        raise ConfigurationError(f"num_candidates must be >= 1 (got {num_candidates})")
    if channels_per_candidate < 5:
        raise ConfigurationError(
            f"channels_per_candidate must be >= 5 for cx, cy, w, h, score (got {channels_per_candidate})"
        )

    p = np.asarray(raw_output, dtype=np.float64)
    if p.ndim == 3:
        if p.shape[0] != 1:
            raise ConfigurationError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
        p = p[0]

    expected = channels_per_candidate * num_candidates
    if p.size != expected:
        raise ConfigurationError(
            f"Model output has {p.size} values, expected {channels_per_candidate} x {num_candidates} = {expected}"
        )
    if p.ndim == 2 and p.shape != (channels_per_candidate, num_candidates):
        raise ConfigurationError(
            f"Expected output shaped ({channels_per_candidate}, {num_candidates}), got {p.shape}"
        )

    # Flat index c * N + i lands on row c, column i.
    return p.reshape(channels_per_candidate, num_candidates)


def decode_batch(raw_output: ArrayLike, num_candidates: int, channels_per_candidate: int) -> CandidateBatch:
    """
    Transpose a channel-major (C, N) model output into per-candidate columns.

    Channels 0..3 are cx, cy, w, h. A single score channel (C == 5) is the
    confidence; with more channels each row from 4 on is a class score and the
    best one wins.
    """

    p = _as_channel_major(raw_output, num_candidates, channels_per_candidate)
    boxes = p[0:4, :].T
    class_scores = p[4:, :]

    if class_scores.shape[0] == 1:
        scores = class_scores[0]
        class_ids = np.zeros((num_candidates,), dtype=np.int64)
    else:
        class_ids = np.argmax(class_scores, axis=0).astype(np.int64)
        scores = class_scores[class_ids, np.arange(num_candidates)]

    return CandidateBatch(boxes=np.ascontiguousarray(boxes), scores=scores, class_ids=class_ids)


def decode(raw_output: ArrayLike, num_candidates: int, channels_per_candidate: int) -> List[RawCandidate]:
    """
    Decode a raw output buffer into one unfiltered RawCandidate per slot.
    """

    return decode_batch(raw_output, num_candidates, channels_per_candidate).to_candidates()


def check_output_shape(output_shape: Sequence[Any], num_candidates: int, channels_per_candidate: int) -> None:
    """
    Fail at setup when a model's declared output cannot feed `decode()`.

    Accepts (C, N) or (1, C, N). Dynamic dimensions (None or symbolic names in
    ONNX graphs) cannot be checked ahead of time and are skipped.
    """

    shape = tuple(output_shape)
    if any(not isinstance(d, (int, np.integer)) for d in shape):
        return
    if len(shape) == 3 and shape[0] == 1:
        shape = shape[1:]
    if shape != (channels_per_candidate, num_candidates):
        raise ConfigurationError(
            f"Model output shape {tuple(output_shape)} does not match config "
            f"({channels_per_candidate}, {num_candidates})"
        )
