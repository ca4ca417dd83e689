import tempfile
import unittest
from pathlib import Path
from unittest import mock

import numpy as np

from _tensors import channel_major
from pothole_kit.config import DetectorConfig
from pothole_kit.errors import ConfigurationError
from pothole_kit.preprocess import fit_to_max_dimension, prepare_input
from pothole_kit.runtime import (
    FrameGate,
    PotholeDetector,
    acquire_interpreter,
    load_detector,
    open_backend,
    resolve_model_path,
)
from pothole_kit.visualize import draw_detections, format_label


class TestPrepareInput(unittest.TestCase):
    def test_nhwc_rgb_normalized(self) -> None:
        img = np.zeros((48, 64, 3), dtype=np.uint8)
        img[:, :, 0] = 255  # blue in BGR
        prep = prepare_input(img, input_size=32)
        self.assertEqual(prep.blob.shape, (1, 32, 32, 3))
        self.assertEqual(prep.blob.dtype, np.float32)
        self.assertEqual(prep.orig_size, (64, 48))
        self.assertTrue(np.allclose(prep.blob[0, :, :, 2], 1.0))
        self.assertTrue(np.allclose(prep.blob[0, :, :, 0], 0.0))

    def test_rejects_grayscale(self) -> None:
        with self.assertRaises(ValueError):
            prepare_input(np.zeros((10, 10), dtype=np.uint8), input_size=8)


class TestFitToMaxDimension(unittest.TestCase):
    def test_longest_side_capped(self) -> None:
        out = fit_to_max_dimension(np.zeros((3000, 4000, 3), dtype=np.uint8), 1280)
        self.assertEqual(out.shape, (960, 1280, 3))

    def test_small_or_disabled_unchanged(self) -> None:
        img = np.zeros((480, 640, 3), dtype=np.uint8)
        self.assertIs(fit_to_max_dimension(img, 1280), img)
        big = np.zeros((3000, 4000, 3), dtype=np.uint8)
        self.assertIs(fit_to_max_dimension(big, None), big)

    def test_rejects_non_positive(self) -> None:
        with self.assertRaises(ValueError):
            fit_to_max_dimension(np.zeros((10, 10, 3), dtype=np.uint8), 0)


class TestPotholeDetector(unittest.TestCase):
    def test_maps_model_output_to_original_image(self) -> None:
        n = 16
        output = channel_major([(0.5, 0.5, 0.25, 0.25, 0.00009)], num_candidates=n).reshape(1, 5, n)
        seen = []

        def infer(blob: np.ndarray) -> np.ndarray:
            seen.append(blob.shape)
            return output

        detector = PotholeDetector(infer, cfg=DetectorConfig(num_candidates=n), input_size=32)
        dets = detector(np.zeros((240, 320, 3), dtype=np.uint8))

        self.assertEqual(seen, [(1, 32, 32, 3)])
        self.assertEqual(len(dets), 1)
        for got, want in zip(dets[0].as_xyxy(), (120.0, 90.0, 200.0, 150.0)):
            self.assertAlmostEqual(got, want, places=4)
        # 80px wide: 0.5 * 100 / 80
        self.assertAlmostEqual(dets[0].distance, 0.625)

    def test_large_frame_is_downscaled_first(self) -> None:
        n = 4
        output = channel_major(
            [(0.3, 0.5, 0.03, 0.03, 0.9), (0.7, 0.5, 0.01, 0.01, 0.8)], num_candidates=n
        ).reshape(1, 5, n)
        detector = PotholeDetector(lambda blob: output, cfg=DetectorConfig(num_candidates=n), input_size=32)

        dets = detector(np.zeros((3000, 4000, 3), dtype=np.uint8))

        # 4000x3000 -> 1280x960: the second box is 12.8px wide and falls under min_box_dim.
        self.assertEqual(len(dets), 1)
        self.assertAlmostEqual(dets[0].confidence, 0.9)
        self.assertAlmostEqual(dets[0].box.width, 38.4, places=4)
        self.assertAlmostEqual(dets[0].box.height, 28.8, places=4)
        self.assertAlmostEqual(dets[0].distance, 50.0 / 38.4, places=4)

    def test_max_dimension_disabled(self) -> None:
        n = 4
        output = channel_major([(0.7, 0.5, 0.01, 0.01, 0.8)], num_candidates=n).reshape(1, 5, n)
        detector = PotholeDetector(
            lambda blob: output, cfg=DetectorConfig(num_candidates=n), input_size=32, max_dimension=None
        )
        dets = detector(np.zeros((3000, 4000, 3), dtype=np.uint8))
        self.assertEqual(len(dets), 1)
        self.assertAlmostEqual(dets[0].box.width, 40.0, places=4)

    def test_close_releases_backend(self) -> None:
        backend = mock.Mock()
        with PotholeDetector(backend.infer, backend=backend, input_size=32):
            pass
        backend.close.assert_called_once_with()


class TestBackendLifecycle(unittest.TestCase):
    def test_unknown_suffix_rejected(self) -> None:
        with self.assertRaises(ValueError):
            open_backend("/models/pothole.bin")

    def test_released_on_error(self) -> None:
        handle = mock.Mock()
        with mock.patch("pothole_kit.runtime.open_backend", return_value=handle):
            with self.assertRaises(RuntimeError):
                with acquire_interpreter("model.tflite") as h:
                    self.assertIs(h, handle)
                    raise RuntimeError("inference failed")
        handle.close.assert_called_once_with()

    def test_relative_path_resolves_against_cwd(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch("pothole_kit.runtime.Path.cwd", return_value=Path(tmp)):
                got = resolve_model_path("Models/best.tflite")
            self.assertEqual(got, (Path(tmp) / "Models" / "best.tflite").resolve())
            self.assertEqual(
                resolve_model_path("best.onnx", root=tmp), (Path(tmp) / "best.onnx").resolve()
            )
        absolute = Path(tmp) / "best.onnx"
        self.assertEqual(resolve_model_path(absolute), absolute)


class TestLoadDetector(unittest.TestCase):
    def test_output_shape_mismatch_fails_at_setup(self) -> None:
        handle = mock.Mock(output_shape=(1, 5, 2100), input_size=320)
        with mock.patch("pothole_kit.runtime.open_backend", return_value=handle):
            with self.assertRaises(ConfigurationError):
                load_detector("best.tflite", cfg=DetectorConfig())
        handle.close.assert_called_once_with()
        handle.infer.assert_not_called()

    def test_matching_model(self) -> None:
        handle = mock.Mock(output_shape=(1, 5, 2100), input_size=320)
        with mock.patch("pothole_kit.runtime.open_backend", return_value=handle):
            detector = load_detector("best.tflite", cfg=DetectorConfig(num_candidates=2100), max_dimension=640)
        self.assertEqual(detector.input_size, 320)
        self.assertEqual(detector.max_dimension, 640)
        self.assertIs(detector.backend, handle)
        handle.close.assert_not_called()


class TestFrameGate(unittest.TestCase):
    def test_one_frame_in_flight(self) -> None:
        gate = FrameGate()
        self.assertTrue(gate.try_enter())
        self.assertTrue(gate.busy)
        self.assertFalse(gate.try_enter())
        gate.exit()
        self.assertTrue(gate.try_enter())

    def test_min_interval(self) -> None:
        now = [0.0]
        gate = FrameGate(min_interval_s=0.5, clock=lambda: now[0])
        self.assertEqual(gate.submit(lambda: "a"), "a")
        now[0] = 0.3
        self.assertIsNone(gate.submit(lambda: "b"))
        now[0] = 0.6
        self.assertEqual(gate.submit(lambda: "c"), "c")

    def test_exit_on_error(self) -> None:
        gate = FrameGate()

        def boom() -> None:
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            gate.submit(boom)
        self.assertFalse(gate.busy)

    def test_skipped_frame_gets_latest_result(self) -> None:
        now = [0.0]
        gate = FrameGate(min_interval_s=0.5, clock=lambda: now[0])
        calls = []

        def work(frame: str) -> str:
            calls.append(frame)
            return f"boxes-{frame}"

        self.assertEqual(gate.submit_or_latest(work, "f0", default=[]), "boxes-f0")
        now[0] = 0.2
        self.assertEqual(gate.submit_or_latest(work, "f1", default=[]), "boxes-f0")
        now[0] = 0.7
        self.assertEqual(gate.submit_or_latest(work, "f2", default=[]), "boxes-f2")
        self.assertEqual(calls, ["f0", "f2"])

    def test_default_before_first_result(self) -> None:
        gate = FrameGate()
        self.assertTrue(gate.try_enter())
        self.assertEqual(gate.submit_or_latest(lambda: "never", default=[]), [])


class TestVisualize(unittest.TestCase):
    def test_label_and_drawing(self) -> None:
        output = channel_major([(0.5, 0.5, 0.25, 0.25, 0.75)], num_candidates=4)
        detector = PotholeDetector(lambda blob: output, cfg=DetectorConfig(num_candidates=4), input_size=16)
        img = np.zeros((100, 100, 3), dtype=np.uint8)
        dets = detector(img)
        self.assertEqual(format_label(dets[0]), "75% 2.0m")

        vis = draw_detections(img, dets)
        self.assertEqual(vis.shape, img.shape)
        self.assertTrue(np.any(vis != 0))
        self.assertFalse(np.any(img != 0))


if __name__ == "__main__":
    unittest.main()
