"""Ticker -> validated PriceSeries loading."""

from __future__ import annotations

from datetime import date
from pathlib import Path

from stratbacktest.core.data.base import DataProvider
from stratbacktest.core.data.cache import ParquetCache
from stratbacktest.core.data.csv_provider import CsvProvider
from stratbacktest.core.data.eodhd_provider import EODHDProvider
from stratbacktest.core.data.series import PriceSeries
from stratbacktest.core.utils.errors import ConfigurationError, InsufficientDataError
from stratbacktest.core.utils.logging import get_logger

_LOGGER_NAME = "stratbacktest.core.data.loader"


class PriceLoader:
    """Fetch bars through a provider (optionally via a parquet cache) and validate them."""

    def __init__(self, provider: DataProvider, cache: ParquetCache | None = None) -> None:
        self.provider = provider
        self.cache = cache

    def load(self, ticker: str, start: date, end: date) -> PriceSeries:
        """
        Load a validated price series for an inclusive date range.

        Raises:
            ConfigurationError: If the ticker is blank or ``start > end``.
            DataSourceError: Propagated unchanged from the provider.
            InsufficientDataError: If the source returned no usable bars.
        """
        symbol = ticker.strip().upper()
        if not symbol:
            raise ConfigurationError("Ticker cannot be empty.")
        if start > end:
            raise ConfigurationError("Date range start must be before or equal to end.")

        logger = get_logger(_LOGGER_NAME)
        start_str = start.isoformat()
        end_str = end.isoformat()
        logger.info("Loading %s data from %s to %s via %s", symbol, start_str, end_str, self.provider.name)
        if self.cache is not None:
            frame = self.cache.get_ohlcv(symbol, start_str, end_str, fetcher=self.provider.fetch_ohlcv)
        else:
            frame = self.provider.fetch_ohlcv(symbol, start_str, end_str)

        if frame.empty:
            raise InsufficientDataError(
                f"No price data for ticker '{symbol}' between {start_str} and {end_str}."
            )
        series = PriceSeries.from_frame(symbol, frame)
        logger.info("%s: bars=%d, date_range=[%s, %s]", symbol, len(series), series.start, series.end)
        return series


def build_provider(name: str, csv_dir: Path | None = None) -> DataProvider:
    """
    Build a provider by configured name.

    Raises:
        ConfigurationError: If the provider name is unknown or lacks settings.
    """
    if name == "eodhd":
        return EODHDProvider()
    if name == "csv":
        if csv_dir is None:
            raise ConfigurationError("data.csv_dir is required for the csv provider.")
        return CsvProvider(csv_dir)
    raise ConfigurationError(f"Unknown data provider '{name}'. Expected one of: csv, eodhd.")


def build_loader(name: str, cache_dir: Path | None = None, csv_dir: Path | None = None) -> PriceLoader:
    """Build a loader for a provider name, caching remote sources when ``cache_dir`` is set."""
    provider = build_provider(name, csv_dir=csv_dir)
    cache = None
    if cache_dir is not None and not isinstance(provider, CsvProvider):
        cache = ParquetCache(cache_dir, namespace=provider.name)
    return PriceLoader(provider=provider, cache=cache)
