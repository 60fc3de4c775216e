"""Deterministic bar-by-bar single-asset simulation engine."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date

from stratbacktest.core.backtest.metrics import analyze
from stratbacktest.core.backtest.types import (
    BacktestResult,
    EquityPoint,
    SimulationResult,
    SimulationSettings,
    Signal,
    Trade,
)
from stratbacktest.core.data.series import PriceSeries
from stratbacktest.core.strategies import (
    StrategySpec,
    prepare_indicators,
    signal_at,
    strategy_parameters,
)
from stratbacktest.core.utils.errors import ConfigurationError, InsufficientDataError
from stratbacktest.core.utils.logging import get_logger

MIN_SERIES_BARS = 2
_LOGGER_NAME = "stratbacktest.core.backtest.engine"


@dataclass
class _Position:
    """Open long position. Lives only inside one simulation loop."""

    entry_date: date
    entry_price: float
    quantity: float
    entry_fees: float


def validate_settings(settings: SimulationSettings) -> None:
    """
    Validate simulation settings.

    Raises:
        ConfigurationError: If any setting is out of range.
    """
    if not math.isfinite(settings.initial_capital) or settings.initial_capital <= 0:
        raise ConfigurationError("initial_capital must be a finite number greater than 0.")
    if not 0.0 < settings.position_fraction <= 1.0:
        raise ConfigurationError("position_fraction must be in (0, 1].")
    if not 0.0 <= settings.commission_bps < 10_000.0:
        raise ConfigurationError("commission_bps must be in [0, 10000).")
    if not 0.0 <= settings.slippage_bps < 10_000.0:
        raise ConfigurationError("slippage_bps must be in [0, 10000).")
    if settings.bars_per_year <= 0:
        raise ConfigurationError("bars_per_year must be greater than 0.")


def _flat_result(series: PriceSeries, capital: float) -> SimulationResult:
    curve = tuple(EquityPoint(date=bar.timestamp, equity=capital) for bar in series)
    return SimulationResult(equity_curve=curve, trades=(), bars_in_market=0)


def simulate(
    series: PriceSeries,
    strategy: StrategySpec,
    settings: SimulationSettings | None = None,
) -> SimulationResult:
    """
    Walk a price series once, applying strategy signals to a single long position.

    Execution model:
    - The signal for bar ``i`` is evaluated from data up to and including ``i``.
    - Entries and exits fill at bar ``i`` close, adjusted by slippage.
    - Entries size to ``position_fraction`` of available cash, net of commission.
    - Equity is marked to market at every bar close.
    - With ``liquidate_at_end`` an open position closes at the final close,
      and no new position opens on the final bar.

    Args:
        series: Validated price series.
        strategy: Strategy record from the catalog.
        settings: Execution settings; defaults to zero-cost, all-in fills.

    Returns:
        Equity curve with one point per bar and the closed-trade log. A series
        shorter than the strategy's lookback yields no trades and a flat curve.

    Raises:
        InsufficientDataError: If the series has fewer than two bars.
        ConfigurationError: If settings are invalid.
    """
    resolved = settings or SimulationSettings()
    validate_settings(resolved)
    if len(series) < MIN_SERIES_BARS:
        raise InsufficientDataError(
            f"Price series for '{series.ticker}' needs at least {MIN_SERIES_BARS} bars, "
            f"got {len(series)}."
        )

    logger = get_logger(_LOGGER_NAME)
    if len(series) < strategy.min_bars:
        logger.info(
            "%s: %d bars is shorter than %s lookback of %d, no trades simulated",
            series.ticker,
            len(series),
            strategy.name,
            strategy.min_bars,
        )
        return _flat_result(series, resolved.initial_capital)

    indicators = prepare_indicators(strategy, series)
    commission_rate = resolved.commission_bps / 10_000.0
    slippage_rate = resolved.slippage_bps / 10_000.0
    last_index = len(series) - 1

    cash = resolved.initial_capital
    position: _Position | None = None
    trades: list[Trade] = []
    curve: list[EquityPoint] = []
    bars_in_market = 0

    def close_position(open_position: _Position, bar_index: int, forced: bool) -> None:
        nonlocal cash
        bar = series[bar_index]
        exit_price = bar.close * (1.0 - slippage_rate)
        proceeds = exit_price * open_position.quantity
        exit_fees = proceeds * commission_rate
        cash += proceeds - exit_fees
        trade = Trade(
            entry_date=open_position.entry_date,
            exit_date=bar.timestamp,
            entry_price=open_position.entry_price,
            exit_price=exit_price,
            quantity=open_position.quantity,
            pnl=(exit_price - open_position.entry_price) * open_position.quantity,
            pnl_pct=(exit_price / open_position.entry_price - 1.0) * 100.0,
            fees=open_position.entry_fees + exit_fees,
            forced_exit=forced,
        )
        trades.append(trade)
        logger.debug(
            "%s: closed %.6f @ %.4f on %s (pnl=%.2f, forced=%s)",
            series.ticker,
            trade.quantity,
            trade.exit_price,
            trade.exit_date,
            trade.pnl,
            forced,
        )

    for bar_index, bar in enumerate(series):
        signal = signal_at(strategy, bar_index, series, indicators)
        is_last_bar = bar_index == last_index

        if position is None and signal is Signal.ENTER_LONG:
            if not (is_last_bar and resolved.liquidate_at_end):
                entry_price = bar.close * (1.0 + slippage_rate)
                budget = cash * resolved.position_fraction
                quantity = budget / (entry_price * (1.0 + commission_rate))
                if resolved.whole_shares:
                    quantity = float(math.floor(quantity))
                if quantity > 0.0:
                    entry_fees = entry_price * quantity * commission_rate
                    cash -= entry_price * quantity + entry_fees
                    position = _Position(
                        entry_date=bar.timestamp,
                        entry_price=entry_price,
                        quantity=quantity,
                        entry_fees=entry_fees,
                    )
                    logger.debug(
                        "%s: opened %.6f @ %.4f on %s",
                        series.ticker,
                        quantity,
                        entry_price,
                        bar.timestamp,
                    )
        elif position is not None and signal is Signal.EXIT_LONG:
            close_position(position, bar_index, forced=False)
            position = None

        if position is not None and is_last_bar and resolved.liquidate_at_end:
            close_position(position, bar_index, forced=True)
            position = None

        if position is not None:
            bars_in_market += 1
            equity = cash + position.quantity * bar.close
        else:
            equity = cash
        curve.append(EquityPoint(date=bar.timestamp, equity=equity))

    return SimulationResult(
        equity_curve=tuple(curve),
        trades=tuple(trades),
        bars_in_market=bars_in_market,
    )


def run_backtest(
    series: PriceSeries,
    strategy: StrategySpec,
    settings: SimulationSettings | None = None,
) -> BacktestResult:
    """
    Simulate a strategy over a series and analyze the outcome.

    The result is a pure function of ``(series, strategy, settings)``.

    Args:
        series: Validated price series.
        strategy: Strategy record from the catalog.
        settings: Execution settings.

    Returns:
        Immutable backtest result.
    """
    resolved = settings or SimulationSettings()
    simulation = simulate(series, strategy, resolved)
    summary = analyze(
        equity_curve=simulation.equity_curve,
        trades=simulation.trades,
        initial_capital=resolved.initial_capital,
        bars_per_year=resolved.bars_per_year,
        bars_in_market=simulation.bars_in_market,
    )
    get_logger(_LOGGER_NAME).info(
        "%s %s: trades=%d total_return=%.4f%% sharpe=%.4f max_drawdown=%.4f%%",
        series.ticker,
        strategy.name,
        summary.total_trades,
        summary.total_return,
        summary.sharpe_ratio,
        summary.max_drawdown,
    )
    return BacktestResult(
        ticker=series.ticker,
        strategy=strategy.name,
        parameters=strategy_parameters(strategy),
        initial_capital=resolved.initial_capital,
        summary=summary,
        equity_curve=simulation.equity_curve,
        trades=simulation.trades,
    )
