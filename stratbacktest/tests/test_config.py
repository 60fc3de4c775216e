"""Tests for YAML configuration loading."""

from __future__ import annotations

import tempfile
import unittest
from datetime import date
from pathlib import Path

from stratbacktest.core.config import dump_config_to_yaml, load_config, load_config_from_yaml_text
from stratbacktest.core.utils.errors import ConfigurationError

_CONFIG_TEXT = """
data:
  ticker: aapl
  provider: csv
  csv_dir: prices
  start: 2020-01-01
  end: 2020-06-30
  cache_dir: cache
strategy:
  name: RSI
  params:
    window: 10
simulation:
  initial_capital: 50000
  commission_bps: 1.5
output:
  artifacts_dir: artifacts
experiments:
  db_path: experiments.sqlite
  tags: [" nightly ", "rsi", "rsi"]
sweep:
  parameter_grid:
    oversold: [20, 30]
"""


class TestConfig(unittest.TestCase):
    """Validate config parsing, normalization and path resolution."""

    def test_load_config_resolves_relative_paths(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir).resolve()
            config_path = root / "run.yaml"
            config_path.write_text(_CONFIG_TEXT, encoding="utf-8")
            config = load_config(config_path)

        self.assertEqual(config.data.ticker, "AAPL")
        self.assertEqual(config.data.start, date(2020, 1, 1))
        self.assertEqual(config.data.csv_dir, root / "prices")
        self.assertEqual(config.output.artifacts_dir, root / "artifacts")
        self.assertEqual(config.experiments.db_path, root / "experiments.sqlite")
        self.assertEqual(config.experiments.tags, ["nightly", "rsi"])
        self.assertEqual(config.strategy.name, "rsi")
        self.assertEqual(config.simulation.to_settings().initial_capital, 50_000.0)
        self.assertEqual(config.sweep.parameter_grid, {"oversold": [20.0, 30.0]})

    def test_yaml_round_trip_is_stable(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            base_dir = Path(temp_dir)
            first = load_config_from_yaml_text(_CONFIG_TEXT, base_dir=base_dir)
            dumped = dump_config_to_yaml(first)
            second = load_config_from_yaml_text(dumped, base_dir=base_dir)

        self.assertEqual(first, second)
        self.assertEqual(dumped, dump_config_to_yaml(second))

    def test_invalid_configs(self) -> None:
        cases = {
            "missing_data": "strategy:\n  name: rsi\n",
            "reversed_dates": "data:\n  ticker: A\n  start: 2021-01-01\n  end: 2020-01-01\n",
            "csv_without_dir": "data:\n  ticker: A\n  provider: csv\n  start: 2020-01-01\n  end: 2020-02-01\n",
            "bad_capital": (
                "data:\n  ticker: A\n  start: 2020-01-01\n  end: 2020-02-01\n"
                "simulation:\n  initial_capital: 0\n"
            ),
            "empty_grid_axis": (
                "data:\n  ticker: A\n  start: 2020-01-01\n  end: 2020-02-01\n"
                "sweep:\n  parameter_grid:\n    fast: []\n"
            ),
            "not_mapping": "- a\n- b\n",
            "bad_yaml": "data: [unclosed\n",
        }
        for label, text in cases.items():
            with self.subTest(case=label):
                with self.assertRaises(ConfigurationError):
                    load_config_from_yaml_text(text)

    def test_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertRaises(ConfigurationError):
                load_config(Path(temp_dir) / "missing.yaml")
            with self.assertRaises(ConfigurationError):
                load_config(Path(temp_dir))


if __name__ == "__main__":
    unittest.main()
