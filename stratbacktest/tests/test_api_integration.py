"""Integration tests for the FastAPI endpoints."""

from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import httpx

from stratbacktest.api.app import create_app
from stratbacktest.core.data.csv_provider import CsvProvider
from stratbacktest.core.data.eodhd_provider import EODHDProvider
from stratbacktest.core.data.loader import PriceLoader
from stratbacktest.core.experiments.store import ExperimentStore
from stratbacktest.tests.helpers import ZIGZAG, mock_fetch_ohlcv, write_price_csv

_DATE_RANGE = {"start": "2020-01-01", "end": "2020-12-31"}


class TestApiIntegration(unittest.IsolatedAsyncioTestCase):
    """Validate request parsing, error mapping and stored-run endpoints."""

    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self._temp_dir.name)
        self.csv_dir = self.root / "prices"
        write_price_csv(self.csv_dir, "SPY", ZIGZAG)
        self.db_path = self.root / "experiments.sqlite"
        self.app = create_app(
            loader_factory=lambda: PriceLoader(CsvProvider(self.csv_dir)),
            db_path=self.db_path,
            job_workers=1,
        )

    def tearDown(self) -> None:
        self.app.state.jobs.shutdown()
        self._temp_dir.cleanup()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=self.app), base_url="http://testserver")

    async def test_health_and_catalog(self) -> None:
        async with self._client() as client:
            health = await client.get("/health")
            catalog = await client.get("/strategies")

        self.assertEqual(health.status_code, 200)
        self.assertEqual(health.json(), {"status": "ok", "service": "stratbacktest-api"})
        self.assertEqual(catalog.status_code, 200)
        self.assertEqual({entry["name"] for entry in catalog.json()}, {"dual_ma", "rsi", "breakout"})

    async def test_backtest_returns_camel_case_result(self) -> None:
        body = {
            "ticker": "spy",
            "strategy": "dual_ma",
            "parameters": {"fast": 2, "slow": 5},
            "initialCapital": 50_000,
            "dateRange": _DATE_RANGE,
        }
        async with self._client() as client:
            response = await client.post("/backtest", json=body)

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["ticker"], "SPY")
        self.assertEqual(payload["initialCapital"], 50_000.0)
        self.assertEqual(payload["parameters"], {"fast": 2, "slow": 5})
        self.assertEqual(len(payload["equityCurve"]), len(ZIGZAG))
        self.assertEqual(payload["totalTrades"], len(payload["trades"]))
        self.assertIn("forcedExit", payload["trades"][0])
        self.assertLessEqual(payload["maxDrawdown"], 0.0)

    async def test_backtest_error_mapping(self) -> None:
        cases = [
            ({"ticker": "SPY", "strategy": "foo"}, 400, "configuration_error"),
            ({"ticker": "SPY", "strategy": "rsi", "initialCapital": -5}, 400, "configuration_error"),
            (
                {"ticker": "SPY", "strategy": "rsi", "dateRange": {"start": "2021-01-01", "end": "2020-01-01"}},
                400,
                "configuration_error",
            ),
            ({"ticker": "QQQ", "strategy": "rsi", "dateRange": _DATE_RANGE}, 502, "data_source_error"),
            (
                {"ticker": "SPY", "strategy": "rsi", "dateRange": {"start": "2023-01-01", "end": "2023-02-01"}},
                422,
                "insufficient_data",
            ),
        ]
        async with self._client() as client:
            for body, status_code, error_code in cases:
                with self.subTest(body=body):
                    response = await client.post("/backtest", json=body)
                    self.assertEqual(response.status_code, status_code)
                    self.assertEqual(response.json()["error_code"], error_code)

    async def test_request_validation(self) -> None:
        async with self._client() as client:
            response = await client.post("/backtest", json={"strategy": "rsi"})
        self.assertEqual(response.status_code, 422)

    async def test_sweep_endpoint(self) -> None:
        body = {
            "ticker": "SPY",
            "strategy": "breakout",
            "dateRange": _DATE_RANGE,
            "grid": {"lookback": [2, 3, 4]},
            "maxWorkers": 2,
            "rankBy": "total_return",
        }
        async with self._client() as client:
            response = await client.post("/sweeps", json=body)
            unknown_metric = await client.post("/sweeps", json={**body, "rankBy": "profit"})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["rankedBy"], "total_return")
        self.assertEqual([row["label"] for row in payload["rows"]], ["lookback=2", "lookback=3", "lookback=4"])
        self.assertEqual(unknown_metric.status_code, 400)

    async def test_experiment_endpoints(self) -> None:
        store = ExperimentStore(self.db_path)
        for experiment_id, ticker in (("exp_1", "SPY"), ("exp_2", "AAPL")):
            store.create_experiment(
                experiment_id=experiment_id,
                ticker=ticker,
                strategy="rsi",
                parameters={"window": 14},
                config_yaml="data:\n  ticker: SPY\n",
                metrics={"total_return": 12.5, "sharpe_ratio": 0.8},
                artifact_paths=["/tmp/equity_curve.png"],
                tags=["api"],
            )

        async with self._client() as client:
            listing = await client.get("/experiments", params={"ticker": "SPY"})
            detail = await client.get("/experiments/exp_1")
            missing = await client.get("/experiments/exp_missing")

        self.assertEqual(listing.status_code, 200)
        self.assertEqual([item["experiment_id"] for item in listing.json()], ["exp_1"])
        self.assertEqual(listing.json()[0]["total_return"], 12.5)
        self.assertEqual(detail.status_code, 200)
        self.assertEqual(detail.json()["metrics"]["sharpe_ratio"], 0.8)
        self.assertEqual(detail.json()["artifact_paths"], ["/tmp/equity_curve.png"])
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["error_code"], "experiment_store_error")


class TestApiDefaultLoader(unittest.IsolatedAsyncioTestCase):
    """Validate the env-configured remote loader with a mocked vendor."""

    async def test_backtest_through_cached_remote_provider(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            env = {
                "EODHD_API_KEY": "test-key",
                "STRATBACKTEST_DATA_PROVIDER": "eodhd",
                "STRATBACKTEST_CACHE_DIR": str(root / "cache"),
                "STRATBACKTEST_DB_PATH": str(root / "experiments.sqlite"),
            }
            body = {
                "ticker": "AAPL",
                "strategy": "dual_ma",
                "parameters": {"fast": 2, "slow": 5},
                "dateRange": {"start": "2020-01-01", "end": "2020-01-20"},
            }
            with patch.dict(os.environ, env), patch.object(EODHDProvider, "fetch_ohlcv", mock_fetch_ohlcv):
                app = create_app(job_workers=1)
                try:
                    async with httpx.AsyncClient(
                        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
                    ) as client:
                        response = await client.post("/backtest", json=body)
                finally:
                    app.state.jobs.shutdown()

            self.assertEqual(response.status_code, 200)
            payload = response.json()
            self.assertEqual(len(payload["equityCurve"]), 20)
            self.assertEqual(payload["totalTrades"], 1)
            self.assertTrue(payload["trades"][0]["forcedExit"])
            self.assertTrue((root / "cache" / "eodhd" / "AAPL.parquet").exists())


if __name__ == "__main__":
    unittest.main()
