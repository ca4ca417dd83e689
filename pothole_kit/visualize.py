from __future__ import annotations

from typing import Iterable, Tuple

import numpy as np

from .types import Detection


BOX_COLOR: Tuple[int, int, int] = (0, 0, 255)  # BGR red


def format_label(det: Detection, show_label: bool = False) -> str:
    """
    "87%" or "87% 3.4m"; the class label is prepended when `show_label` is set.
    """

    parts = []
    if show_label:
        parts.append(det.label)
    parts.append(f"{int(det.confidence * 100)}%")
    if det.distance is not None:
        parts.append(f"{det.distance:.1f}m")
    return " ".join(parts)


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    *,
    show_label: bool = False,
    color: Tuple[int, int, int] = BOX_COLOR,
    box_thickness: int = 2,
    font_scale: float = 0.5,
    font_thickness: int = 1,
) -> np.ndarray:
    """
    Draw bounding boxes + confidence/distance labels on an OpenCV BGR image and return a copy.
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_detections(). Install with `pip install opencv-python`.") from e

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    h, w = out.shape[:2]

    for det in detections:
        x1, y1, x2, y2 = det.as_xyxy()
        x1i = int(np.clip(round(x1), 0, w - 1))
        y1i = int(np.clip(round(y1), 0, h - 1))
        x2i = int(np.clip(round(x2), 0, w - 1))
        y2i = int(np.clip(round(y2), 0, h - 1))

        cv2.rectangle(out, (x1i, y1i), (x2i, y2i), color, thickness=box_thickness)

        label = format_label(det, show_label=show_label)
        (tw, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, font_thickness)
        # Above the box if there is room, else inside.
        y_text_top = y1i - th - baseline
        if y_text_top < 0:
            y_text_top = y1i

        x_text_right = min(x1i + tw, w - 1)
        y_text_bottom = min(y_text_top + th + baseline, h - 1)

        cv2.rectangle(out, (x1i, y_text_top), (x_text_right, y_text_bottom), color, thickness=-1)
        cv2.putText(
            out,
            label,
            (x1i, min(y_text_top + th, h - 1)),
            cv2.FONT_HERSHEY_SIMPLEX,
            font_scale,
            (255, 255, 255),
            thickness=font_thickness,
            lineType=cv2.LINE_AA,
        )

    return out
