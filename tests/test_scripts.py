import importlib.util
import io
import sys
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock


SCRIPTS_DIR = Path(__file__).resolve().parents[1] / "Scripts"


def _load_script(name: str):
    module_spec = importlib.util.spec_from_file_location(name, SCRIPTS_DIR / f"{name}.py")
    module = importlib.util.module_from_spec(module_spec)
    sys.modules[name] = module
    module_spec.loader.exec_module(module)
    return module


class TestBenchmarkPostprocess(unittest.TestCase):
    def setUp(self) -> None:
        self.bench = _load_script("benchmark_postprocess")

    def test_summary_percentiles(self) -> None:
        s = self.bench._summarize_ms([0.001, 0.002, 0.003, 0.004, 0.005])
        self.assertEqual(s.n, 5)
        self.assertAlmostEqual(s.mean_ms, 3.0)
        self.assertAlmostEqual(s.p50_ms, 3.0)
        # Linear interpolation: 0.9 * 4 = 3.6 -> between 4ms and 5ms.
        self.assertAlmostEqual(s.p90_ms, 4.6)
        self.assertAlmostEqual(s.p95_ms, 4.8)

    def test_summary_single_and_empty(self) -> None:
        s = self.bench._summarize_ms([0.0025])
        self.assertAlmostEqual(s.p50_ms, 2.5)
        self.assertAlmostEqual(s.p95_ms, 2.5)
        with self.assertRaises(ValueError):
            self.bench._summarize_ms([])

    def test_synthetic_output_layout(self) -> None:
        out = self.bench.synthetic_output(200, positives=10)
        self.assertEqual(out.shape, (1, 5, 200))
        self.assertEqual(int((out[0, 4] > 0.000015).sum()), 10)

    def test_main_prints_stage_timings(self) -> None:
        argv = ["benchmark_postprocess.py", "--candidates", "200", "--positives", "10", "--warmup", "0", "--repeats", "2"]
        buf = io.StringIO()
        with mock.patch("sys.argv", argv), redirect_stdout(buf):
            self.assertEqual(self.bench.main(), 0)

        lines = buf.getvalue().splitlines()
        self.assertTrue(lines[0].startswith("decode: n=2 "))
        self.assertTrue(lines[1].startswith("filter: n=2 "))
        self.assertTrue(lines[2].startswith("nms: n=2 "))
        self.assertTrue(lines[3].startswith("candidates=200 "))


if __name__ == "__main__":
    unittest.main()
