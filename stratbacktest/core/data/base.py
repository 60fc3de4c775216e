"""Abstract interface for historical price providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

import pandas as pd


class DataProvider(ABC):
    """Ticker -> historical daily OHLCV collaborator."""

    name: str = "provider"

    @abstractmethod
    def fetch_ohlcv(self, ticker: str, start: str, end: str) -> pd.DataFrame:
        """
        Fetch daily OHLCV data for a ticker over an inclusive date range.

        Args:
            ticker: Provider ticker identifier.
            start: Inclusive start date in ``YYYY-MM-DD`` format.
            end: Inclusive end date in ``YYYY-MM-DD`` format.

        Returns:
            A dataframe with UTC datetime index named ``date`` and columns:
            ``open``, ``high``, ``low``, ``close``, ``volume``. An empty frame
            means the provider has no bars in the range.

        Raises:
            DataSourceError: If the underlying source cannot be reached or read.
        """
