"""Integration tests for cache coverage and fetch behavior."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import pandas as pd

from stratbacktest.core.data.cache import ParquetCache
from stratbacktest.core.utils.errors import CacheError, ConfigurationError
from stratbacktest.tests.helpers import make_price_frame


def _slice_frame(frame: pd.DataFrame, start: str, end: str) -> pd.DataFrame:
    """Slice a frame between inclusive UTC date strings."""
    start_ts = pd.to_datetime(start, utc=True)
    end_ts = pd.to_datetime(end, utc=True)
    return frame.loc[(frame.index >= start_ts) & (frame.index <= end_ts)].copy()


class TestParquetCache(unittest.TestCase):
    """Validate cache coverage logic for ticker data."""

    def test_uses_cache_without_refetch_when_range_covered(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            cache = ParquetCache(Path(temp_dir))
            frame = make_price_frame([100.0, 101.0, 102.0, 103.0, 104.0])
            cache.save("AAPL", frame)

            fetch_calls: list[tuple[str, str, str]] = []

            def fetcher(ticker: str, start: str, end: str) -> pd.DataFrame:
                fetch_calls.append((ticker, start, end))
                return frame

            result = cache.get_ohlcv("AAPL", "2020-01-02", "2020-01-04", fetcher)
            self.assertEqual(fetch_calls, [])
            self.assertEqual(result.shape, (3, 5))

    def test_fetches_missing_head_and_tail_only(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            cache = ParquetCache(Path(temp_dir))
            full_frame = make_price_frame([100.0, 101.0, 102.0, 103.0, 104.0, 105.0])
            cache.save("AAPL", _slice_frame(full_frame, "2020-01-03", "2020-01-04"))

            fetch_calls: list[tuple[str, str, str]] = []

            def fetcher(ticker: str, start: str, end: str) -> pd.DataFrame:
                fetch_calls.append((ticker, start, end))
                return _slice_frame(full_frame, start, end)

            result = cache.get_ohlcv("AAPL", "2020-01-01", "2020-01-06", fetcher)
            self.assertEqual(
                fetch_calls,
                [("AAPL", "2020-01-01", "2020-01-02"), ("AAPL", "2020-01-05", "2020-01-06")],
            )
            self.assertEqual(result.shape, (6, 5))
            self.assertEqual(len(cache.load("AAPL")), 6)

    def test_cache_miss_saves_fetched_frame(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            cache = ParquetCache(Path(temp_dir), namespace="eodhd")
            frame = make_price_frame([1.0, 2.0, 3.0])

            result = cache.get_ohlcv("brk/b", "2020-01-01", "2020-01-03", lambda *_: frame)

            self.assertEqual(result.shape, (3, 5))
            self.assertEqual(cache.cache_path("brk/b").name, "BRK_B.parquet")
            self.assertEqual(cache.cache_path("brk/b").parent.name, "eodhd")
            self.assertTrue(cache.cache_path("brk/b").exists())

    def test_invalid_inputs(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            cache = ParquetCache(Path(temp_dir))
            with self.assertRaises(ConfigurationError):
                cache.get_ohlcv("AAPL", "2020-01-05", "2020-01-01", lambda *_: make_price_frame([1.0]))
            with self.assertRaises(ConfigurationError):
                cache.cache_path("   ")

    def test_corrupt_file_raises_cache_error(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            cache = ParquetCache(Path(temp_dir))
            cache.cache_path("AAPL").write_text("not parquet", encoding="utf-8")
            with self.assertRaises(CacheError):
                cache.load("AAPL")


if __name__ == "__main__":
    unittest.main()
