"""Test helpers for deterministic backtest cases."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timedelta
from pathlib import Path

import pandas as pd

from stratbacktest.core.data.series import Bar, PriceSeries


def make_price_frame(close_values: Sequence[float], start: str = "2020-01-01") -> pd.DataFrame:
    """Build a deterministic daily OHLCV dataframe from close values."""
    index = pd.date_range(start, periods=len(close_values), freq="D", tz="UTC", name="date")
    close = pd.Series(close_values, index=index, dtype=float)
    return pd.DataFrame(
        {
            "open": close,
            "high": close,
            "low": close,
            "close": close,
            "volume": 1_000.0,
        },
        index=index,
    )


def make_series(
    close_values: Sequence[float],
    ticker: str = "TEST",
    start: date = date(2020, 1, 1),
) -> PriceSeries:
    """Build a daily price series whose open/high/low equal the close."""
    bars = [
        Bar(
            timestamp=start + timedelta(days=offset),
            open=float(value),
            high=float(value),
            low=float(value),
            close=float(value),
            volume=1_000.0,
        )
        for offset, value in enumerate(close_values)
    ]
    return PriceSeries.from_bars(ticker, bars)


def write_price_csv(csv_dir: Path, ticker: str, close_values: Sequence[float], start: str = "2020-01-01") -> Path:
    """Write ``<csv_dir>/<TICKER>.csv`` for the csv provider."""
    csv_dir.mkdir(parents=True, exist_ok=True)
    frame = make_price_frame(close_values, start=start)
    frame.index = frame.index.strftime("%Y-%m-%d")
    path = csv_dir / f"{ticker.upper()}.csv"
    frame.to_csv(path, index_label="date")
    return path


def mock_fetch_ohlcv(self: object, ticker: str, start: str, end: str) -> pd.DataFrame:
    """Deterministic rising-price fetcher used in place of the remote provider."""
    _ = self
    index = pd.date_range(start=start, end=end, freq="D", tz="UTC", name="date")
    if index.empty:
        return pd.DataFrame(
            columns=["open", "high", "low", "close", "volume"],
            index=pd.DatetimeIndex([], tz="UTC", name="date"),
        )
    offset = {"SPY": 300.0, "AAPL": 150.0}.get(ticker, 50.0)
    close = pd.Series(range(len(index)), index=index, dtype=float) + offset
    return pd.DataFrame(
        {"open": close, "high": close + 1.0, "low": close - 1.0, "close": close, "volume": 1_000.0},
        index=index,
    )


ZIGZAG = [
    10.0, 11.0, 12.0, 13.0, 14.0, 15.0, 14.0, 13.0, 12.0, 11.0,
    10.0, 9.0, 10.0, 11.0, 12.0, 13.0, 14.0, 15.0, 16.0, 17.0,
    16.0, 15.0, 14.0, 13.0, 12.0, 11.0, 12.0, 13.0, 14.0, 15.0,
]
