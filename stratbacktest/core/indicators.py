"""
Technical indicators over a PriceSeries.

Every indicator is a pure function returning an :class:`Indicator` whose
values cover only the bars where the indicator is defined. A window of ``w``
drops the first ``w - 1`` bars (RSI drops ``w``, since it needs ``w`` price
changes). Rolling computations run through pandas' O(n) rolling kernels or a
single recursive pass, never an O(n * window) recomputation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
import pandas as pd

from stratbacktest.core.data.series import PriceSeries
from stratbacktest.core.utils.errors import ConfigurationError


@dataclass(frozen=True, eq=False)
class Indicator:
    """
    Indicator values aligned to a price series.

    ``values`` holds only defined entries; ``values.iloc[k]`` belongs to bar
    ``offset + k`` of the source series.
    """

    name: str
    window: int
    offset: int
    values: pd.Series

    def __len__(self) -> int:
        return int(self.values.shape[0])

    def is_defined(self, bar_index: int) -> bool:
        return self.offset <= bar_index < self.offset + len(self)

    def at(self, bar_index: int) -> float | None:
        """Return the value at a source bar position, ``None`` before it is defined."""
        if not self.is_defined(bar_index):
            return None
        return float(self.values.iloc[bar_index - self.offset])


def validate_window(window: int, series: PriceSeries, name: str) -> int:
    """
    Validate an indicator window against a series.

    Raises:
        ConfigurationError: If the window is not an integer in ``[1, len(series)]``.
    """
    if isinstance(window, bool) or not isinstance(window, (int, np.integer)):
        raise ConfigurationError(f"{name} window must be an integer, got {window!r}.")
    if window < 1:
        raise ConfigurationError(f"{name} window must be >= 1, got {window}.")
    if window > len(series):
        raise ConfigurationError(
            f"{name} window {window} exceeds series length {len(series)} for '{series.ticker}'."
        )
    return int(window)


def _defined_tail(name: str, window: int, offset: int, values: pd.Series) -> Indicator:
    return Indicator(name=name, window=window, offset=offset, values=values.iloc[offset:].astype(float))


def moving_average(series: PriceSeries, window: int, field: str = "close") -> Indicator:
    """Simple moving average of one price column."""
    resolved = validate_window(window, series, "Moving average")
    rolled = series.column(field).rolling(window=resolved, min_periods=resolved).mean()
    return _defined_tail(f"sma_{field}_{resolved}", resolved, resolved - 1, rolled)


def rolling_high(series: PriceSeries, window: int, field: str = "high") -> Indicator:
    """Highest value of a price column over the trailing window, current bar included."""
    resolved = validate_window(window, series, "Rolling high")
    rolled = series.column(field).rolling(window=resolved, min_periods=resolved).max()
    return _defined_tail(f"rolling_high_{field}_{resolved}", resolved, resolved - 1, rolled)


def rolling_low(series: PriceSeries, window: int, field: str = "low") -> Indicator:
    """Lowest value of a price column over the trailing window, current bar included."""
    resolved = validate_window(window, series, "Rolling low")
    rolled = series.column(field).rolling(window=resolved, min_periods=resolved).min()
    return _defined_tail(f"rolling_low_{field}_{resolved}", resolved, resolved - 1, rolled)


def _rsi_from_averages(average_gain: float, average_loss: float) -> float:
    if average_loss == 0.0:
        return 50.0 if average_gain == 0.0 else 100.0
    relative_strength = average_gain / average_loss
    return 100.0 - 100.0 / (1.0 + relative_strength)


def rsi(series: PriceSeries, window: int = 14) -> Indicator:
    """
    Wilder's relative strength index of closing prices.

    The first value (bar ``window``) seeds the averages with the simple mean
    of the first ``window`` gains and losses; later values use Wilder's
    recursive smoothing. A flat window reads 50, a window with no losses 100.
    An RSI window equal to the series length yields an empty indicator.
    """
    resolved = validate_window(window, series, "RSI")
    closes = series.column("close")
    changes = closes.diff().to_numpy(dtype=float)
    output = np.full(len(series), math.nan)

    if len(series) > resolved:
        gains = np.clip(changes[1:], 0.0, None)
        losses = np.clip(-changes[1:], 0.0, None)
        average_gain = float(gains[:resolved].mean())
        average_loss = float(losses[:resolved].mean())
        output[resolved] = _rsi_from_averages(average_gain, average_loss)
        for position in range(resolved + 1, len(series)):
            average_gain = (average_gain * (resolved - 1) + gains[position - 1]) / resolved
            average_loss = (average_loss * (resolved - 1) + losses[position - 1]) / resolved
            output[position] = _rsi_from_averages(average_gain, average_loss)

    values = pd.Series(output, index=closes.index, dtype=float)
    return _defined_tail(f"rsi_{resolved}", resolved, resolved, values)
