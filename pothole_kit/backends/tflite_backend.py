from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np


PathLike = Union[str, Path]


@dataclass(frozen=True)
class TFLiteBackendConfig:
    """
    Configuration for the LiteRT (TFLite) interpreter.

    - num_threads: interpreter threads (the mobile app used 4)
    - input_index/output_index: which model input/output to bind
    """

    num_threads: int = 4
    input_index: int = 0
    output_index: int = 0


def _quantization(detail: Dict[str, Any]) -> Optional[tuple]:
    scale, zero_point = detail.get("quantization", (0.0, 0))
    if not scale:
        return None
    return float(scale), int(zero_point)


class TFLiteBackend:
    """
    LiteRT backend for `.tflite` exports (float or INT8 weights).

    Expects the NHWC float32 blob from `prepare_input()`. Integer input/output
    tensors are (de)quantized with the scale and zero point stored in the model,
    so callers always see float outputs.
    """

    def __init__(self, model_path: PathLike, cfg: TFLiteBackendConfig = TFLiteBackendConfig()):
        try:
            from ai_edge_litert.interpreter import Interpreter  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "ai-edge-litert is required for the TFLite backend. Install it with `pip install ai-edge-litert`."
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        self.interpreter = Interpreter(model_path=str(self.model_path), num_threads=cfg.num_threads)
        self.interpreter.allocate_tensors()

        inputs = self.interpreter.get_input_details()
        outputs = self.interpreter.get_output_details()
        if cfg.input_index >= len(inputs):
            raise IndexError(f"input_index {cfg.input_index} out of range (num inputs={len(inputs)}).")
        if cfg.output_index >= len(outputs):
            raise IndexError(f"output_index {cfg.output_index} out of range (num outputs={len(outputs)}).")
        self._input = inputs[cfg.input_index]
        self._output = outputs[cfg.output_index]

        self.input_shape = tuple(int(x) for x in self._input["shape"])
        self.output_shape = tuple(int(x) for x in self._output["shape"])

    @property
    def input_size(self) -> int:
        # [batch, height, width, channels]
        return self.input_shape[1]

    def infer(self, blob: np.ndarray) -> np.ndarray:
        if self.interpreter is None:
            raise RuntimeError("TFLite interpreter has been closed.")

        dtype = self._input["dtype"]
        x = np.asarray(blob, dtype=np.float32)
        quant = _quantization(self._input)
        if quant is not None and np.issubdtype(dtype, np.integer):
            scale, zero_point = quant
            info = np.iinfo(dtype)
            x = np.clip(np.round(x / scale + zero_point), info.min, info.max)
        x = x.astype(dtype)

        self.interpreter.set_tensor(self._input["index"], x)
        self.interpreter.invoke()
        y = self.interpreter.get_tensor(self._output["index"])

        quant = _quantization(self._output)
        if quant is not None and np.issubdtype(y.dtype, np.integer):
            scale, zero_point = quant
            return (y.astype(np.float32) - zero_point) * scale
        return np.array(y, dtype=np.float32)

    def close(self) -> None:
        self.interpreter = None

    def __enter__(self) -> "TFLiteBackend":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
