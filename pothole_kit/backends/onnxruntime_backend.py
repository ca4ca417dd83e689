from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np


PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CPUExecutionProvider"])
    - input_name/output_name: override auto-selected I/O names if needed
    - num_threads: intra-op threads, 0 lets ORT decide
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None
    num_threads: int = 0


class OnnxRuntimeBackend:
    """
    ONNX Runtime backend for the pothole model.

    Takes the NHWC float32 blob from `prepare_input()`; when the exported graph
    expects NCHW (1, 3, S, S) the blob is transposed before running.
    Returns the primary output, typically shaped (1, 5, 8400).
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime`."
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        if cfg.num_threads > 0:
            sess_opts.intra_op_num_threads = cfg.num_threads
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        model_input = self.session.get_inputs()[0]
        self.input_name = cfg.input_name or model_input.name
        self.output_name = cfg.output_name or self.session.get_outputs()[0].name
        self.input_shape = tuple(model_input.shape)
        self.output_shape = tuple(self.session.get_outputs()[0].shape)
        self.channels_first = len(self.input_shape) == 4 and self.input_shape[1] == 3

    @property
    def input_size(self) -> int:
        dim = self.input_shape[2] if self.channels_first else self.input_shape[1]
        if not isinstance(dim, int):
            raise ValueError(f"Model input size is dynamic ({self.input_shape}); pass input_size explicitly.")
        return dim

    @property
    def providers_in_use(self) -> Sequence[str]:
        return tuple(self.session.get_providers())

    def infer(self, blob: np.ndarray, extra_inputs: Optional[Dict[str, Any]] = None) -> np.ndarray:
        if self.session is None:
            raise RuntimeError("ONNX Runtime session has been closed.")
        if self.channels_first:
            blob = np.ascontiguousarray(np.transpose(blob, (0, 3, 1, 2)))
        inputs: Dict[str, Any] = {self.input_name: blob}
        if extra_inputs:
            inputs.update(extra_inputs)
        outputs = self.session.run([self.output_name], inputs)
        return outputs[0]

    def close(self) -> None:
        # ORT frees the session when the last reference goes away.
        self.session = None

    def __enter__(self) -> "OnnxRuntimeBackend":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
