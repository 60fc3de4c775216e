"""Parquet caching for daily OHLCV bars."""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

import pandas as pd

from stratbacktest.core.data.frames import normalize_ohlcv_frame, slice_inclusive, to_utc_timestamp
from stratbacktest.core.utils.errors import CacheError, ConfigurationError
from stratbacktest.core.utils.logging import get_logger

Fetcher = Callable[[str, str, str], pd.DataFrame]
_TICKER_SANITIZE_PATTERN = re.compile(r"[^A-Za-z0-9_.-]+")
_LOGGER_NAME = "stratbacktest.core.data.cache"


def _sanitize_ticker(ticker: str) -> str:
    """Make a ticker safe to use as a filename."""
    clean_ticker = _TICKER_SANITIZE_PATTERN.sub("_", ticker.strip().upper())
    if not clean_ticker:
        raise ConfigurationError("Ticker cannot be empty.")
    return clean_ticker


def _format_day(timestamp: pd.Timestamp) -> str:
    return timestamp.strftime("%Y-%m-%d")


class ParquetCache:
    """Per-ticker parquet cache that only fetches uncovered date ranges."""

    def __init__(self, cache_dir: Path, namespace: str = "") -> None:
        """
        Initialize a cache manager.

        Args:
            cache_dir: Directory where per-ticker parquet files are stored.
            namespace: Optional sub-directory, usually the provider name, so
                different sources never share cached bars.
        """
        root = cache_dir.expanduser().resolve()
        self.cache_dir = root / namespace if namespace else root
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheError(f"Failed to create cache directory {self.cache_dir}: {exc}") from exc

    def cache_path(self, ticker: str) -> Path:
        return self.cache_dir / f"{_sanitize_ticker(ticker)}.parquet"

    def load(self, ticker: str) -> pd.DataFrame | None:
        """
        Load cached bars for a ticker.

        Returns:
            Normalized dataframe if a cache file exists, else ``None``.
        """
        path = self.cache_path(ticker)
        if not path.exists():
            return None
        try:
            cached = pd.read_parquet(path, engine="pyarrow")
        except Exception as exc:
            raise CacheError(f"Failed to read cache for ticker '{ticker}' at {path}: {exc}") from exc
        return normalize_ohlcv_frame(cached)

    def save(self, ticker: str, frame: pd.DataFrame) -> None:
        """Persist normalized bars for a ticker, replacing any previous file."""
        normalized = normalize_ohlcv_frame(frame)
        path = self.cache_path(ticker)
        try:
            normalized.to_parquet(path, engine="pyarrow", index=True)
        except Exception as exc:
            raise CacheError(f"Failed to write cache for ticker '{ticker}' at {path}: {exc}") from exc

    def get_ohlcv(self, ticker: str, start: str, end: str, fetcher: Fetcher) -> pd.DataFrame:
        """
        Return bars for ``[start, end]``, fetching only what the cache lacks.

        Args:
            ticker: Ticker symbol.
            start: Inclusive start date in ``YYYY-MM-DD`` format.
            end: Inclusive end date in ``YYYY-MM-DD`` format.
            fetcher: ``(ticker, start, end) -> DataFrame`` provider callable.

        Returns:
            Normalized OHLCV dataframe for the requested range, possibly empty.
        """
        logger = get_logger(_LOGGER_NAME)
        start_ts = to_utc_timestamp(start)
        end_ts = to_utc_timestamp(end)
        if start_ts > end_ts:
            raise ConfigurationError("Start date must be before or equal to end date.")

        cached = self.load(ticker)
        if cached is None or cached.empty:
            logger.debug("Cache miss for %s, fetching %s..%s", ticker, start, end)
            merged = normalize_ohlcv_frame(fetcher(ticker, _format_day(start_ts), _format_day(end_ts)))
            self.save(ticker, merged)
            return slice_inclusive(merged, start_ts, end_ts)

        frames: list[pd.DataFrame] = [cached]
        cache_start = cached.index.min()
        cache_end = cached.index.max()
        if start_ts < cache_start:
            head_end = cache_start - pd.Timedelta(days=1)
            logger.debug("Fetching uncovered head for %s: %s..%s", ticker, start, _format_day(head_end))
            frames.append(
                normalize_ohlcv_frame(fetcher(ticker, _format_day(start_ts), _format_day(head_end)))
            )
        if end_ts > cache_end:
            tail_start = cache_end + pd.Timedelta(days=1)
            logger.debug("Fetching uncovered tail for %s: %s..%s", ticker, _format_day(tail_start), end)
            frames.append(
                normalize_ohlcv_frame(fetcher(ticker, _format_day(tail_start), _format_day(end_ts)))
            )

        if len(frames) == 1:
            return slice_inclusive(cached, start_ts, end_ts)

        merged = normalize_ohlcv_frame(pd.concat([frame for frame in frames if not frame.empty]))
        self.save(ticker, merged)
        return slice_inclusive(merged, start_ts, end_ts)
