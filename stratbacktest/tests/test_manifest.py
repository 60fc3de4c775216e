"""Unit tests for run manifests and plot artifacts."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from stratbacktest.core.backtest.engine import run_backtest
from stratbacktest.core.strategies import build_strategy
from stratbacktest.core.utils.errors import ArtifactError, DataSourceError
from stratbacktest.core.utils.manifest import RunManifestWriter
from stratbacktest.core.utils.plotting import save_equity_curve_plot
from stratbacktest.tests.helpers import ZIGZAG, make_series


class TestRunManifestWriter(unittest.TestCase):
    """Validate success and failure manifest serialization."""

    def test_success_manifest(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            writer = RunManifestWriter(output_dir=Path(temp_dir) / "exp_1", command="run", run_id="exp_1")
            writer.set_inputs(config_path=Path("config.yaml"), db_path=Path("db.sqlite"))
            writer.set_context(
                ticker="SPY",
                strategy="dual_ma",
                parameters={"slow": 20, "fast": 5},
                start="2020-01-01",
                end="2020-01-31",
            )
            writer.mark_success(
                metrics={"sharpe_ratio": 1.0},
                artifact_paths=["/tmp/a.png", "/tmp/a.png"],
                extra={"experiment_id": "exp_1"},
            )
            manifest_path = writer.write()
            payload = json.loads(manifest_path.read_text(encoding="utf-8"))

        self.assertEqual(manifest_path.name, "run_manifest.json")
        self.assertEqual(writer.status, "success")
        self.assertEqual(payload["status"], "success")
        self.assertEqual(payload["command"], "run")
        self.assertEqual(payload["run_id"], "exp_1")
        self.assertEqual(list(payload["context"]["parameters"]), ["fast", "slow"])
        self.assertEqual(payload["context"]["date_range"], {"start": "2020-01-01", "end": "2020-01-31"})
        self.assertEqual(payload["result"]["artifact_paths"], ["/tmp/a.png"])
        self.assertIsNone(payload["inputs"]["source_experiment_id"])
        self.assertIsNotNone(payload["duration_seconds"])

    def test_failure_manifest(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            writer = RunManifestWriter(
                output_dir=Path(temp_dir),
                command="sweep",
                run_id="sweep_2",
                manifest_name="sweep_manifest.json",
            )
            try:
                raise DataSourceError("provider down")
            except DataSourceError as exc:
                writer.mark_failure(exc)
            payload = json.loads(writer.write().read_text(encoding="utf-8"))

        self.assertEqual(payload["status"], "failed")
        self.assertEqual(payload["failure"]["exception_type"], "DataSourceError")
        self.assertEqual(payload["failure"]["error_code"], "data_source_error")
        self.assertIn("provider down", payload["failure"]["message"])
        self.assertIn("Traceback", payload["failure"]["traceback"])
        self.assertEqual(payload["result"], {})


class TestEquityCurvePlot(unittest.TestCase):
    """Validate the equity curve artifact."""

    def test_writes_png_with_trade_markers(self) -> None:
        result = run_backtest(make_series(ZIGZAG), build_strategy("dual_ma", {"fast": 2, "slow": 5}))
        with tempfile.TemporaryDirectory() as temp_dir:
            path = save_equity_curve_plot(
                result.equity_curve,
                Path(temp_dir) / "plots",
                filename="curve.png",
                trades=result.trades,
                title="TEST dual_ma",
            )
            self.assertTrue(path.exists())
            self.assertEqual(path.read_bytes()[:8], b"\x89PNG\r\n\x1a\n")

    def test_empty_curve_raises(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertRaises(ArtifactError):
                save_equity_curve_plot([], Path(temp_dir))


if __name__ == "__main__":
    unittest.main()
