"""Immutable daily OHLCV price series."""

from __future__ import annotations

import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date
from functools import cached_property

import pandas as pd

from stratbacktest.core.utils.errors import InsufficientDataError

OHLCV_COLUMNS: tuple[str, str, str, str, str] = ("open", "high", "low", "close", "volume")
PRICE_COLUMNS: tuple[str, str, str, str] = ("open", "high", "low", "close")


@dataclass(frozen=True)
class Bar:
    """One daily OHLCV observation."""

    timestamp: date
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def __post_init__(self) -> None:
        for name in PRICE_COLUMNS:
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0.0:
                raise InsufficientDataError(
                    f"Bar {self.timestamp.isoformat()} has non-positive or non-finite {name}: {value}"
                )
        if not math.isfinite(self.volume) or self.volume < 0.0:
            raise InsufficientDataError(
                f"Bar {self.timestamp.isoformat()} has negative or non-finite volume: {self.volume}"
            )


@dataclass(frozen=True)
class PriceSeries:
    """
    Time-ordered bars for one ticker.

    Bars must be non-empty with strictly increasing timestamps. The series is
    read-only once built; derived pandas views are computed lazily and cached.
    """

    ticker: str
    bars: tuple[Bar, ...]

    def __post_init__(self) -> None:
        if not self.ticker.strip():
            raise InsufficientDataError("Price series ticker cannot be empty.")
        if not self.bars:
            raise InsufficientDataError(f"Price series for '{self.ticker}' is empty.")
        for previous, current in zip(self.bars, self.bars[1:]):
            if current.timestamp <= previous.timestamp:
                raise InsufficientDataError(
                    f"Price series for '{self.ticker}' is not strictly increasing at "
                    f"{previous.timestamp.isoformat()} -> {current.timestamp.isoformat()}."
                )

    def __len__(self) -> int:
        return len(self.bars)

    def __iter__(self) -> Iterator[Bar]:
        return iter(self.bars)

    def __getitem__(self, position: int) -> Bar:
        return self.bars[position]

    @property
    def start(self) -> date:
        return self.bars[0].timestamp

    @property
    def end(self) -> date:
        return self.bars[-1].timestamp

    @cached_property
    def frame(self) -> pd.DataFrame:
        """OHLCV dataframe indexed by a naive ``DatetimeIndex`` named ``date``."""
        index = pd.DatetimeIndex([pd.Timestamp(bar.timestamp) for bar in self.bars], name="date")
        return pd.DataFrame(
            {column: [float(getattr(bar, column)) for bar in self.bars] for column in OHLCV_COLUMNS},
            index=index,
        )

    def column(self, name: str) -> pd.Series:
        """Return one OHLCV column as a float series."""
        if name not in OHLCV_COLUMNS:
            raise KeyError(f"Unknown price column: {name}")
        return self.frame[name]

    @classmethod
    def from_bars(cls, ticker: str, bars: Sequence[Bar]) -> PriceSeries:
        return cls(ticker=ticker.strip().upper(), bars=tuple(bars))

    @classmethod
    def from_frame(cls, ticker: str, frame: pd.DataFrame) -> PriceSeries:
        """
        Build a series from an OHLCV dataframe indexed by datetime.

        Args:
            ticker: Ticker symbol.
            frame: Dataframe with a ``DatetimeIndex`` (or ``date`` column) and
                ``open``, ``high``, ``low``, ``close`` columns; ``volume`` is optional.

        Returns:
            Validated price series.

        Raises:
            InsufficientDataError: If the frame is empty, lacks price columns or
                violates bar invariants.
        """
        if frame.empty:
            raise InsufficientDataError(f"Market data for '{ticker}' is empty.")

        working = frame
        if "date" in working.columns:
            working = working.set_index("date")
        if not isinstance(working.index, pd.DatetimeIndex):
            raise InsufficientDataError(f"Market data for '{ticker}' must use a DatetimeIndex.")
        missing = [column for column in PRICE_COLUMNS if column not in working.columns]
        if missing:
            raise InsufficientDataError(
                f"Market data for '{ticker}' is missing required columns: {missing}"
            )

        volumes = working["volume"] if "volume" in working.columns else pd.Series(0.0, index=working.index)
        bars = [
            Bar(
                timestamp=timestamp.date(),
                open=float(row_open),
                high=float(row_high),
                low=float(row_low),
                close=float(row_close),
                volume=0.0 if pd.isna(row_volume) else float(row_volume),
            )
            for timestamp, row_open, row_high, row_low, row_close, row_volume in zip(
                working.index,
                working["open"],
                working["high"],
                working["low"],
                working["close"],
                volumes,
                strict=True,
            )
        ]
        return cls.from_bars(ticker, bars)
