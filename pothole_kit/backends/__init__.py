"""
Optional inference backends for pothole_kit.

Each backend imports its runtime lazily, so decoding, filtering and NMS can be
used without installing ONNX Runtime or a TFLite interpreter.
"""

from __future__ import annotations

__all__ = []
