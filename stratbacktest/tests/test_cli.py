"""Integration tests for the CLI workflow, typed exit codes and failure manifests."""

from __future__ import annotations

import json
import os
import tempfile
import textwrap
import unittest
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from stratbacktest.cli import app
from stratbacktest.tests.helpers import ZIGZAG, write_price_csv


def _write_config(root: Path, strategy: str = "dual_ma") -> Path:
    config_path = root / "config.yaml"
    config_path.write_text(
        textwrap.dedent(f"""
            data:
              provider: csv
              ticker: SPY
              csv_dir: {root / "prices"}
              start: "2020-01-01"
              end: "2020-12-31"
            strategy:
              name: {strategy}
              params:
                fast: 2
                slow: 5
            simulation:
              initial_capital: 10000
              commission_bps: 1.0
            output:
              artifacts_dir: {root / "artifacts"}
              save_equity_plot: true
            sweep:
              max_workers: 2
              parameter_grid:
                fast: [2, 3]
                slow: [5, 8]
            experiments:
              db_path: {root / "experiments.sqlite"}
              tags: [cli-test]
            """).strip() + "\n",
        encoding="utf-8",
    )
    return config_path


def _value(output: str, key: str) -> str:
    return next(line for line in output.splitlines() if line.startswith(f"{key}=")).split("=", 1)[1].strip()


class TestCliFailures(unittest.TestCase):
    """Validate typed exit codes and failure manifest behavior."""

    def test_run_with_missing_config_returns_config_exit_code(self) -> None:
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as temp_dir:
            result = runner.invoke(app, ["run", "--config", str(Path(temp_dir) / "missing.yaml")])
            self.assertEqual(result.exit_code, 2, msg=result.output)

    def test_unknown_strategy_writes_failed_manifest(self) -> None:
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            config_path = _write_config(root, strategy="foo")

            result = runner.invoke(app, ["run", "--config", str(config_path)])
            self.assertEqual(result.exit_code, 2, msg=result.output)

            manifests = list((root / "artifacts").glob("*/run_manifest.json"))
            self.assertEqual(len(manifests), 1)
            payload = json.loads(manifests[0].read_text(encoding="utf-8"))
            self.assertEqual(payload["status"], "failed")
            self.assertEqual(payload["command"], "run")
            self.assertEqual(payload["failure"]["exception_type"], "ConfigurationError")
            self.assertEqual(payload["inputs"]["config_path"], str(config_path.resolve()))

    def test_show_missing_experiment_returns_store_exit_code(self) -> None:
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "experiments.sqlite"
            result = runner.invoke(app, ["show", "--experiment", "exp_missing", "--db-path", str(db_path)])
            self.assertEqual(result.exit_code, 8, msg=result.output)

    def test_backtest_failures_use_typed_exit_codes(self) -> None:
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as temp_dir:
            csv_dir = Path(temp_dir)
            write_price_csv(csv_dir, "SPY", ZIGZAG)
            base = ["backtest", "--provider", "csv", "--csv-dir", str(csv_dir), "--start", "2020-01-01"]

            bad_param = runner.invoke(app, [*base, "--ticker", "SPY", "--param", "fast"])
            unknown = runner.invoke(app, [*base, "--ticker", "SPY", "--strategy", "foo"])
            missing = runner.invoke(app, [*base, "--ticker", "QQQ"])
            bad_date = runner.invoke(app, [*base, "--ticker", "SPY", "--end", "2020/12/31"])

        self.assertEqual(bad_param.exit_code, 2, msg=bad_param.output)
        self.assertEqual(unknown.exit_code, 2, msg=unknown.output)
        self.assertIn("configuration_error", unknown.output)
        self.assertEqual(missing.exit_code, 3, msg=missing.output)
        self.assertIn("data_source_error", missing.output)
        self.assertEqual(bad_date.exit_code, 2, msg=bad_date.output)


class TestCliIntegration(unittest.TestCase):
    """Validate end-to-end CLI workflow with experiment tracking."""

    def test_run_list_show_rerun_and_sweep_flow(self) -> None:
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            write_price_csv(root / "prices", "SPY", ZIGZAG)
            config_path = _write_config(root)
            db_path = root / "experiments.sqlite"

            run_result = runner.invoke(app, ["run", "--config", str(config_path)])
            self.assertEqual(run_result.exit_code, 0, msg=run_result.output)
            experiment_id = _value(run_result.output, "experiment_id")
            self.assertEqual(_value(run_result.output, "ticker"), "SPY")
            self.assertEqual(_value(run_result.output, "parameters"), '{"fast": 2, "slow": 5}')
            self.assertIn("sharpe_ratio=", run_result.output)
            artifacts = [line for line in run_result.output.splitlines() if line.startswith("artifact=")]
            self.assertEqual(len(artifacts), 3)

            rerun_result = runner.invoke(app, ["run", "--experiment", experiment_id, "--db-path", str(db_path)])
            self.assertEqual(rerun_result.exit_code, 0, msg=rerun_result.output)
            self.assertEqual(_value(rerun_result.output, "rerun_from"), experiment_id)
            self.assertEqual(_value(rerun_result.output, "total_return"), _value(run_result.output, "total_return"))

            sweep_result = runner.invoke(
                app, ["sweep", "--config", str(config_path), "--rank-by", "total_return"]
            )
            self.assertEqual(sweep_result.exit_code, 0, msg=sweep_result.output)
            self.assertTrue(_value(sweep_result.output, "experiment_id").startswith("sweep_"))
            self.assertIn("fast=3,slow=8 | ok", sweep_result.output)
            self.assertIn(f"{_value(sweep_result.output, 'best')} | ok", sweep_result.output)

            list_result = runner.invoke(app, ["list", "--db-path", str(db_path), "--strategy", "dual_ma"])
            self.assertEqual(list_result.exit_code, 0, msg=list_result.output)
            self.assertIn(experiment_id, list_result.output)
            self.assertEqual(list_result.output.count("| dual_ma |"), 3)

            show_result = runner.invoke(app, ["show", "--experiment", experiment_id, "--db-path", str(db_path)])
            self.assertEqual(show_result.exit_code, 0, msg=show_result.output)
            self.assertEqual(_value(show_result.output, "kind"), "backtest")
            self.assertIn("tags=cli-test", show_result.output)
            self.assertIn("config_yaml:", show_result.output)

    def test_backtest_prints_json_result(self) -> None:
        runner = CliRunner()
        with tempfile.TemporaryDirectory() as temp_dir:
            csv_dir = Path(temp_dir)
            write_price_csv(csv_dir, "SPY", ZIGZAG)
            args = [
                "backtest",
                "--ticker", "spy",
                "--strategy", "dual_ma",
                "--param", "fast=2",
                "--param", "slow=5",
                "--capital", "2500",
                "--start", "2020-01-01",
                "--end", "2020-12-31",
                "--provider", "csv",
                "--csv-dir", str(csv_dir),
            ]
            with patch.dict(os.environ, {"STRATBACKTEST_LOG_LEVEL": "ERROR"}):
                result = runner.invoke(app, args)

        self.assertEqual(result.exit_code, 0, msg=result.output)
        payload = json.loads(result.stdout)
        self.assertEqual(payload["ticker"], "SPY")
        self.assertEqual(payload["initialCapital"], 2500.0)
        self.assertEqual(payload["parameters"], {"fast": 2, "slow": 5})
        self.assertEqual(len(payload["equityCurve"]), len(ZIGZAG))

    def test_strategies_lists_catalog(self) -> None:
        result = CliRunner().invoke(app, ["strategies"])
        self.assertEqual(result.exit_code, 0, msg=result.output)
        self.assertIn("dual_ma | Dual MA Crossover | fast=50, slow=200", result.output)
        self.assertIn("rsi | RSI Mean Reversion", result.output)
        self.assertIn("breakout | Momentum Breakout | lookback=20", result.output)


if __name__ == "__main__":
    unittest.main()
