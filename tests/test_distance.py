import unittest

from pothole_kit.distance import DistanceEstimator, estimate_distance
from pothole_kit.types import BoundingBox, Detection


def _box(width: float, height: float) -> BoundingBox:
    return BoundingBox(10.0, 10.0, 10.0 + width, 10.0 + height)


class TestEstimateDistance(unittest.TestCase):
    def test_uses_larger_side(self) -> None:
        # 50 wide, 100 tall -> 0.5 * 100 / 100 = 0.5
        self.assertAlmostEqual(estimate_distance(_box(50, 100), 0.5), 0.5)
        self.assertAlmostEqual(estimate_distance(_box(100, 50), 0.5), 0.5)

    def test_mid_range_value(self) -> None:
        self.assertAlmostEqual(estimate_distance(_box(20, 10)), 2.5)

    def test_below_floor_returns_zero(self) -> None:
        self.assertEqual(estimate_distance(_box(4.9, 4.9)), 0.0)
        self.assertEqual(estimate_distance(_box(0, 0)), 0.0)

    def test_clamped_to_bounds(self) -> None:
        self.assertEqual(estimate_distance(_box(400, 400)), 0.5)
        self.assertEqual(estimate_distance(_box(5, 5), calibration_factor=1000.0), 50.0)

    def test_clamp_holds_from_floor_up(self) -> None:
        for size in range(5, 2000, 7):
            d = estimate_distance(_box(size, size / 2), calibration_factor=3000.0)
            self.assertGreaterEqual(d, 0.5)
            self.assertLessEqual(d, 50.0)

    def test_smaller_box_is_never_closer(self) -> None:
        sizes = [5 + 0.5 * i for i in range(400)]
        distances = [estimate_distance(_box(s, s)) for s in reversed(sizes)]
        for nearer, farther in zip(distances, distances[1:]):
            self.assertLessEqual(nearer, farther)


class TestDistanceEstimator(unittest.TestCase):
    def test_annotate_sets_distance_on_copies(self) -> None:
        det = Detection(box=_box(50, 25), label="jalan_berlubang", confidence=0.9)
        out = DistanceEstimator().annotate([det])
        self.assertIsNone(det.distance)
        self.assertAlmostEqual(out[0].distance, 1.0)
        self.assertEqual(out[0].box, det.box)

    def test_custom_parameters(self) -> None:
        est = DistanceEstimator(known_real_height=0.3, calibration_factor=200.0, max_distance=10.0)
        self.assertAlmostEqual(est.estimate(_box(30, 30)), 2.0)
        self.assertEqual(est.estimate(_box(5, 5)), 10.0)


if __name__ == "__main__":
    unittest.main()
