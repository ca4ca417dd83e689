from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Sequence, TypeVar, Union

import numpy as np

from .config import DetectorConfig
from .decode import check_output_shape
from .pipeline import DetectionPipeline, PipelineResult
from .preprocess import fit_to_max_dimension, prepare_input
from .types import Detection


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
T = TypeVar("T")


def resolve_model_path(model_path: PathLike, root: Optional[PathLike] = None) -> Path:
    """
    Absolute paths are returned as-is; relative ones resolve against `root`,
    or the current working directory when `root` is None.
    """

    p = Path(model_path)
    if p.is_absolute():
        return p
    base = Path(root) if root is not None else Path.cwd()
    return (base / p).resolve()


def open_backend(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = None,
    num_threads: int = 4,
    onnx_providers: Optional[Sequence[str]] = None,
) -> Any:
    """
    Open an inference backend for a model on disk.

    Relative `model_path`s resolve against `root`, defaulting to the current
    working directory. The backend is picked from the file suffix (`.onnx` ->
    onnxruntime, `.tflite` -> tflite) unless `backend` is given. The caller owns
    the returned object and must `close()` it; prefer `acquire_interpreter()`.
    """

    resolved = resolve_model_path(model_path, root=root)
    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix == ".tflite":
            chosen = "tflite"
        else:
            raise ValueError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )

    chosen = chosen.lower()
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        handle = OnnxRuntimeBackend(
            resolved,
            OnnxRuntimeBackendConfig(providers=onnx_providers, num_threads=num_threads),
        )
    elif chosen == "tflite":
        from .backends.tflite_backend import TFLiteBackend, TFLiteBackendConfig

        handle = TFLiteBackend(resolved, TFLiteBackendConfig(num_threads=num_threads))
    else:
        raise ValueError(f"Unsupported backend: {backend!r}")

    logger.debug(
        "Opened %s model %s: input %s, output %s",
        chosen,
        resolved.name,
        handle.input_shape,
        handle.output_shape,
    )
    return handle


@contextmanager
def acquire_interpreter(model_path: PathLike, **kwargs: Any) -> Iterator[Any]:
    """
    Scoped backend: closed on every exit path, including exceptions.

    A handle is not thread-safe; use one per worker or serialize access.
    """

    handle = open_backend(model_path, **kwargs)
    try:
        yield handle
    finally:
        handle.close()
        logger.debug("Released model %s", model_path)


class PotholeDetector:
    """
    Plug-and-play detector: preprocess (stretch resize) -> inference -> post-process.

    Expects BGR images (OpenCV-style). Frames whose longer side exceeds
    `max_dimension` are shrunk first; the minimum box size, the distance
    heuristic and the returned boxes are all in pixels of that shrunk frame
    (see `fit_frame`). Each detection carries a distance estimate unless
    `with_distance=False`.
    """

    def __init__(
        self,
        infer_fn: Callable[[np.ndarray], np.ndarray],
        *,
        cfg: DetectorConfig = DetectorConfig(),
        input_size: int = 640,
        max_dimension: Optional[int] = 1280,
        backend: Optional[Any] = None,
    ):
        self._infer_fn = infer_fn
        self.backend = backend
        self.input_size = input_size
        self.max_dimension = max_dimension
        self.pipeline = DetectionPipeline(cfg)

    def fit_frame(self, image_bgr: np.ndarray) -> np.ndarray:
        """
        The frame detections are reported against: `image_bgr` shrunk to `max_dimension`.
        Draw results on this frame, not on the full-size original.
        """

        return fit_to_max_dimension(image_bgr, self.max_dimension)

    def run(self, image_bgr: np.ndarray, *, with_distance: bool = True) -> PipelineResult:
        frame = self.fit_frame(image_bgr)
        prep = prepare_input(frame, self.input_size)
        start = time.perf_counter()
        preds = self._infer_fn(prep.blob)
        infer_ms = (time.perf_counter() - start) * 1000.0

        frame_w, frame_h = prep.orig_size
        result = self.pipeline.run(preds, frame_w, frame_h, with_distance=with_distance)
        stats = result.stats
        logger.debug(
            "%dx%d frame: inference %.1f ms, %d above threshold, %d after filter, %d after NMS, %d returned",
            frame_w,
            frame_h,
            infer_ms,
            stats.above_threshold,
            stats.after_filter,
            stats.after_nms,
            stats.returned,
        )
        return result

    def __call__(self, image_bgr: np.ndarray, *, with_distance: bool = True) -> List[Detection]:
        return self.run(image_bgr, with_distance=with_distance).detections

    def close(self) -> None:
        if self.backend is not None:
            self.backend.close()
            self.backend = None

    def __enter__(self) -> "PotholeDetector":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def load_detector(
    model_path: PathLike,
    *,
    cfg: DetectorConfig = DetectorConfig(),
    input_size: Optional[int] = None,
    max_dimension: Optional[int] = 1280,
    **backend_kwargs: Any,
) -> PotholeDetector:
    """
    Build a PotholeDetector that owns its backend. Use it as a context manager
    (or call `close()`) to release the interpreter.

    The input size is read from the model unless given. A model whose output
    shape does not match `cfg` raises ConfigurationError here, not on the first frame.
    """

    handle = open_backend(model_path, **backend_kwargs)
    try:
        check_output_shape(handle.output_shape, cfg.num_candidates, cfg.channels_per_candidate)
        size = input_size if input_size is not None else handle.input_size
    except Exception:
        handle.close()
        raise
    return PotholeDetector(handle.infer, cfg=cfg, input_size=size, max_dimension=max_dimension, backend=handle)


class FrameGate:
    """
    At most one frame in flight, and at least `min_interval_s` between accepted frames.

    Frames arriving while another is processing (or too early) are not queued:
    `submit()` skips them and `submit_or_latest()` answers them with the last result.
    """

    def __init__(self, min_interval_s: float = 0.0, clock: Callable[[], float] = time.monotonic):
        if min_interval_s < 0:
            raise ValueError("min_interval_s must be >= 0")
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._lock = threading.Lock()
        self._busy = False
        self._last_start: Optional[float] = None
        self._latest: Any = None

    @property
    def busy(self) -> bool:
        return self._busy

    def try_enter(self) -> bool:
        with self._lock:
            if self._busy:
                return False
            now = self._clock()
            if self._last_start is not None and (now - self._last_start) < self.min_interval_s:
                return False
            self._busy = True
            self._last_start = now
            return True

    def exit(self) -> None:
        with self._lock:
            self._busy = False

    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Optional[T]:
        """
        Run `fn` if the gate admits this frame, else return None without calling it.
        """

        if not self.try_enter():
            return None
        try:
            result = fn(*args, **kwargs)
        finally:
            self.exit()
        with self._lock:
            self._latest = result
        return result

    def submit_or_latest(self, fn: Callable[..., T], *args: Any, default: Any = None, **kwargs: Any) -> T:
        """
        Like `submit()`, but a skipped frame gets the most recent result (or `default`
        before any frame has been processed). Keeps video output at the source frame rate.
        """

        if not self.try_enter():
            with self._lock:
                return default if self._latest is None else self._latest
        try:
            result = fn(*args, **kwargs)
        finally:
            self.exit()
        with self._lock:
            self._latest = result
        return result
