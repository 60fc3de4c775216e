"""Price data model, providers, caching and loading."""

from stratbacktest.core.data.base import DataProvider
from stratbacktest.core.data.cache import ParquetCache
from stratbacktest.core.data.csv_provider import CsvProvider
from stratbacktest.core.data.eodhd_provider import EODHDProvider
from stratbacktest.core.data.loader import PriceLoader, build_loader, build_provider
from stratbacktest.core.data.series import Bar, PriceSeries

__all__ = [
    "Bar",
    "CsvProvider",
    "DataProvider",
    "EODHDProvider",
    "ParquetCache",
    "PriceLoader",
    "PriceSeries",
    "build_loader",
    "build_provider",
]
