from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class PreparedInput:
    blob: np.ndarray
    orig_size: Tuple[int, int]


def prepare_input(image_bgr: np.ndarray, input_size: int = 640, smooth: bool = False) -> PreparedInput:
    """
    Stretch an OpenCV BGR frame to the square model input.

    Returns a float32 NHWC blob (1, S, S, 3) in RGB order scaled to [0, 1], plus the
    original (width, height). No letterboxing: the model sees the whole frame
    squashed, so normalized outputs map straight back onto the original image.
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for prepare_input(). Install with `pip install opencv-python`.") from e

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")
    if input_size < 1:
        raise ValueError("input_size must be >= 1")

    orig_h, orig_w = image_bgr.shape[:2]
    img = image_bgr
    if (orig_w, orig_h) != (input_size, input_size):
        interpolation = cv2.INTER_LINEAR if smooth else cv2.INTER_NEAREST
        img = cv2.resize(image_bgr, (input_size, input_size), interpolation=interpolation)

    blob = img[:, :, ::-1].astype(np.float32) / 255.0
    blob = np.ascontiguousarray(blob[None, ...])

    return PreparedInput(blob=blob, orig_size=(orig_w, orig_h))


def fit_to_max_dimension(image_bgr: np.ndarray, max_dimension: Optional[int] = 1280) -> np.ndarray:
    """
    Shrink a frame so its longer side is at most `max_dimension` pixels.

    Smaller frames (and `max_dimension=None`) are returned unchanged. The minimum
    box size and the distance heuristic are tuned in pixels of this shrunk frame,
    so detections come back in its coordinates.
    """

    if max_dimension is None:
        return image_bgr
    if max_dimension < 1:
        raise ValueError("max_dimension must be >= 1")

    h, w = image_bgr.shape[:2]
    if w <= max_dimension and h <= max_dimension:
        return image_bgr

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError(
            "OpenCV is required for fit_to_max_dimension(). Install with `pip install opencv-python`."
        ) from e

    scale = max_dimension / max(w, h)
    new_w, new_h = max(1, int(w * scale)), max(1, int(h * scale))
    return cv2.resize(image_bgr, (new_w, new_h), interpolation=cv2.INTER_AREA)
