"""
Strategy catalog.

Strategies are a closed set of frozen parameter records. Each record carries a
``name`` tag; indicator preparation and per-bar signal evaluation are plain
functions looked up by that tag. Evaluation at bar ``i`` reads only indicator
values at ``i`` and ``i - 1``, so no signal depends on later bars.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, fields
from typing import Any, ClassVar

from stratbacktest.core.backtest.types import Signal
from stratbacktest.core.data.series import PriceSeries
from stratbacktest.core.indicators import Indicator, moving_average, rolling_high, rolling_low, rsi
from stratbacktest.core.utils.errors import ConfigurationError

IndicatorCache = Mapping[str, Indicator]


def _require_windows(record: Any) -> None:
    for key in record.window_fields:
        value = getattr(record, key)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigurationError(f"{record.name}.{key} must be an integer >= 1, got {value!r}.")


@dataclass(frozen=True)
class DualMovingAverage:
    """Long while the fast simple moving average sits above the slow one."""

    fast: int = 50
    slow: int = 200

    name: ClassVar[str] = "dual_ma"
    label: ClassVar[str] = "Dual MA Crossover"
    window_fields: ClassVar[tuple[str, ...]] = ("fast", "slow")

    def __post_init__(self) -> None:
        _require_windows(self)
        if self.fast >= self.slow:
            raise ConfigurationError(
                f"dual_ma fast window ({self.fast}) must be smaller than slow window ({self.slow})."
            )

    @property
    def min_bars(self) -> int:
        return self.slow


@dataclass(frozen=True)
class RsiMeanReversion:
    """Buy oversold RSI dips, sell overbought RSI rallies."""

    window: int = 14
    oversold: float = 30.0
    overbought: float = 70.0

    name: ClassVar[str] = "rsi"
    label: ClassVar[str] = "RSI Mean Reversion"
    window_fields: ClassVar[tuple[str, ...]] = ("window",)

    def __post_init__(self) -> None:
        _require_windows(self)
        if not 0.0 < self.oversold < self.overbought < 100.0:
            raise ConfigurationError(
                "rsi thresholds must satisfy 0 < oversold < overbought < 100, "
                f"got oversold={self.oversold}, overbought={self.overbought}."
            )

    @property
    def min_bars(self) -> int:
        return self.window + 1


@dataclass(frozen=True)
class MomentumBreakout:
    """Enter on a close above the prior ``lookback`` highs, exit below the prior lows."""

    lookback: int = 20

    name: ClassVar[str] = "breakout"
    label: ClassVar[str] = "Momentum Breakout"
    window_fields: ClassVar[tuple[str, ...]] = ("lookback",)

    def __post_init__(self) -> None:
        _require_windows(self)

    @property
    def min_bars(self) -> int:
        return self.lookback + 1


StrategySpec = DualMovingAverage | RsiMeanReversion | MomentumBreakout

STRATEGY_TYPES: dict[str, type[DualMovingAverage] | type[RsiMeanReversion] | type[MomentumBreakout]] = {
    DualMovingAverage.name: DualMovingAverage,
    RsiMeanReversion.name: RsiMeanReversion,
    MomentumBreakout.name: MomentumBreakout,
}


def _coerce_window(strategy_name: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{strategy_name}.{key} must be a number, got {value!r}.")
    if not math.isfinite(value) or float(value) != int(value):
        raise ConfigurationError(f"{strategy_name}.{key} must be a whole number, got {value!r}.")
    window = int(value)
    if window < 1:
        raise ConfigurationError(f"{strategy_name}.{key} must be >= 1, got {window}.")
    return window


def _coerce_threshold(strategy_name: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ConfigurationError(f"{strategy_name}.{key} must be a finite number, got {value!r}.")
    return float(value)


def build_strategy(name: str, params: Mapping[str, Any] | None = None) -> StrategySpec:
    """
    Build a validated strategy record from a catalog name and parameter map.

    Args:
        name: Catalog tag (``dual_ma``, ``rsi`` or ``breakout``).
        params: Overrides for the strategy's default parameters.

    Returns:
        Frozen strategy record.

    Raises:
        ConfigurationError: For an unknown name, unknown parameter keys or
            out-of-range values.
    """
    strategy_type = STRATEGY_TYPES.get(str(name).strip().lower())
    if strategy_type is None:
        raise ConfigurationError(
            f"Unknown strategy '{name}'. Expected one of: {', '.join(sorted(STRATEGY_TYPES))}."
        )

    allowed = {item.name for item in fields(strategy_type)}
    overrides = dict(params or {})
    unknown = sorted(set(overrides) - allowed)
    if unknown:
        raise ConfigurationError(
            f"Unknown parameters for strategy '{strategy_type.name}': {unknown}. "
            f"Allowed: {sorted(allowed)}."
        )

    coerced: dict[str, Any] = {}
    for key, value in overrides.items():
        if key in strategy_type.window_fields:
            coerced[key] = _coerce_window(strategy_type.name, key, value)
        else:
            coerced[key] = _coerce_threshold(strategy_type.name, key, value)
    return strategy_type(**coerced)


def strategy_parameters(strategy: StrategySpec) -> dict[str, float]:
    """Return the full effective parameter map of a strategy record."""
    return {key: value for key, value in sorted(asdict(strategy).items())}


def describe_catalog() -> list[dict[str, Any]]:
    """Describe every catalog entry with its default parameters."""
    return [
        {
            "name": strategy_type.name,
            "label": strategy_type.label,
            "description": (strategy_type.__doc__ or "").strip(),
            "defaults": strategy_parameters(strategy_type()),
        }
        for strategy_type in STRATEGY_TYPES.values()
    ]


def _relation(left: float, right: float) -> int:
    if left > right:
        return 1
    if left < right:
        return -1
    return 0


def _prepare_dual_ma(strategy: DualMovingAverage, series: PriceSeries) -> dict[str, Indicator]:
    return {
        "fast": moving_average(series, strategy.fast),
        "slow": moving_average(series, strategy.slow),
    }


def _signal_dual_ma(
    strategy: DualMovingAverage,
    bar_index: int,
    series: PriceSeries,
    indicators: IndicatorCache,
) -> Signal:
    fast = indicators["fast"]
    slow = indicators["slow"]
    if not slow.is_defined(bar_index):
        return Signal.HOLD

    current = _relation(fast.at(bar_index), slow.at(bar_index))
    if current == 0:
        return Signal.HOLD

    # Last strict relation before this bar; equal bars are skipped and the bar
    # where both averages first exist sits on a "below" baseline.
    previous = -1
    prior_index = bar_index - 1
    while slow.is_defined(prior_index):
        relation = _relation(fast.at(prior_index), slow.at(prior_index))
        if relation != 0:
            previous = relation
            break
        prior_index -= 1

    if previous < 0 and current > 0:
        return Signal.ENTER_LONG
    if previous > 0 and current < 0:
        return Signal.EXIT_LONG
    return Signal.HOLD


def _prepare_rsi(strategy: RsiMeanReversion, series: PriceSeries) -> dict[str, Indicator]:
    return {"rsi": rsi(series, strategy.window)}


def _signal_rsi(
    strategy: RsiMeanReversion,
    bar_index: int,
    series: PriceSeries,
    indicators: IndicatorCache,
) -> Signal:
    values = indicators["rsi"]
    current = values.at(bar_index)
    previous = values.at(bar_index - 1)
    if current is None or previous is None:
        return Signal.HOLD

    if previous >= strategy.oversold > current:
        return Signal.ENTER_LONG
    if previous <= strategy.overbought < current:
        return Signal.EXIT_LONG
    return Signal.HOLD


def _prepare_breakout(strategy: MomentumBreakout, series: PriceSeries) -> dict[str, Indicator]:
    return {
        "high": rolling_high(series, strategy.lookback),
        "low": rolling_low(series, strategy.lookback),
    }


def _signal_breakout(
    strategy: MomentumBreakout,
    bar_index: int,
    series: PriceSeries,
    indicators: IndicatorCache,
) -> Signal:
    # Channel of the prior N bars ends at bar_index - 1.
    prior_high = indicators["high"].at(bar_index - 1)
    prior_low = indicators["low"].at(bar_index - 1)
    if prior_high is None or prior_low is None:
        return Signal.HOLD

    close = series[bar_index].close
    if close > prior_high:
        return Signal.ENTER_LONG
    if close < prior_low:
        return Signal.EXIT_LONG
    return Signal.HOLD


PrepareFn = Callable[[Any, PriceSeries], dict[str, Indicator]]
SignalFn = Callable[[Any, int, PriceSeries, IndicatorCache], Signal]

_PREPARERS: dict[str, PrepareFn] = {
    DualMovingAverage.name: _prepare_dual_ma,
    RsiMeanReversion.name: _prepare_rsi,
    MomentumBreakout.name: _prepare_breakout,
}
_EVALUATORS: dict[str, SignalFn] = {
    DualMovingAverage.name: _signal_dual_ma,
    RsiMeanReversion.name: _signal_rsi,
    MomentumBreakout.name: _signal_breakout,
}


def prepare_indicators(strategy: StrategySpec, series: PriceSeries) -> dict[str, Indicator]:
    """
    Compute the indicator cache a strategy reads, once per run.

    Raises:
        ConfigurationError: If a window exceeds the series length.
    """
    return _PREPARERS[strategy.name](strategy, series)


def signal_at(
    strategy: StrategySpec,
    bar_index: int,
    series: PriceSeries,
    indicators: IndicatorCache,
) -> Signal:
    """Evaluate a strategy's signal at one bar position."""
    if bar_index < 0 or bar_index >= len(series):
        raise IndexError(f"Bar index {bar_index} outside series of length {len(series)}.")
    return _EVALUATORS[strategy.name](strategy, bar_index, series, indicators)
