"""Unit tests for SQLite experiment store."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from stratbacktest.core.experiments.store import ExperimentStore
from stratbacktest.core.utils.errors import ExperimentNotFoundError, ExperimentStoreError


def _create(store: ExperimentStore, experiment_id: str, ticker: str, strategy: str, **overrides):
    payload = {
        "experiment_id": experiment_id,
        "ticker": ticker,
        "strategy": strategy,
        "parameters": {"fast": 5, "slow": 20},
        "config_yaml": f"data:\n  ticker: {ticker}\n",
        "metrics": {"sharpe_ratio": 1.23},
        "artifact_paths": ["/tmp/a.png"],
    }
    payload.update(overrides)
    return store.create_experiment(**payload)


class TestExperimentStore(unittest.TestCase):
    """Validate create/get/list/update experiment operations."""

    def test_create_get_list_append(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = ExperimentStore(Path(temp_dir) / "nested" / "experiments.sqlite")

            first = _create(store, "exp_a", "SPY", "dual_ma", tags=["baseline", " baseline ", ""])
            _create(store, "exp_b", "AAPL", "rsi", kind="sweep", tags=["sweep"])

            loaded = store.get_experiment("exp_a")
            assert loaded is not None
            self.assertEqual(loaded.tags, ["baseline"])
            self.assertEqual(loaded.parameters, {"fast": 5, "slow": 20})
            self.assertIsNotNone(loaded.timestamp.tzinfo)
            self.assertEqual(loaded, first)
            self.assertIsNone(store.get_experiment("exp_missing"))

            listing = store.list_experiments(limit=10)
            self.assertEqual([item.experiment_id for item in listing], ["exp_b", "exp_a"])
            self.assertEqual(listing[0].kind, "sweep")

            updated = store.append_artifacts("exp_a", ["/tmp/c.png", "/tmp/a.png"])
            self.assertEqual(updated.artifact_paths, ["/tmp/a.png", "/tmp/c.png"])

    def test_filters_and_limit(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = ExperimentStore(Path(temp_dir) / "experiments.sqlite")
            _create(store, "exp_1", "SPY", "dual_ma")
            _create(store, "exp_2", "SPY", "rsi")
            _create(store, "exp_3", "AAPL", "rsi")

            self.assertEqual({r.experiment_id for r in store.list_experiments(ticker="spy")}, {"exp_1", "exp_2"})
            self.assertEqual({r.experiment_id for r in store.list_experiments(strategy="RSI")}, {"exp_2", "exp_3"})
            self.assertEqual(
                [r.experiment_id for r in store.list_experiments(ticker="SPY", strategy="rsi")],
                ["exp_2"],
            )
            self.assertEqual(len(store.list_experiments(limit=1)), 1)

    def test_errors(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = ExperimentStore(Path(temp_dir) / "experiments.sqlite")
            _create(store, "exp_a", "SPY", "dual_ma")

            with self.assertRaises(ExperimentStoreError):
                _create(store, "exp_a", "SPY", "dual_ma")
            with self.assertRaises(ExperimentNotFoundError):
                store.append_artifacts("exp_missing", ["/tmp/x.png"])

    def test_next_experiment_id_is_unique(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = ExperimentStore(Path(temp_dir) / "experiments.sqlite")
            first = store.next_experiment_id(prefix="sweep")
            _create(store, first, "SPY", "dual_ma")
            second = store.next_experiment_id(prefix="sweep")

        self.assertTrue(first.startswith("sweep_"))
        self.assertNotEqual(first, second)

    def test_record_payload_is_camel_case(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = ExperimentStore(Path(temp_dir) / "experiments.sqlite")
            payload = _create(store, "exp_a", "SPY", "dual_ma").to_dict()

        self.assertEqual(payload["experimentId"], "exp_a")
        self.assertEqual(payload["artifactPaths"], ["/tmp/a.png"])
        self.assertIn("metrics", payload)


if __name__ == "__main__":
    unittest.main()
