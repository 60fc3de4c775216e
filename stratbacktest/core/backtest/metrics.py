"""Performance statistics over an equity curve and trade log."""

from __future__ import annotations

import math
import sys
from collections.abc import Sequence

import pandas as pd

from stratbacktest.core.backtest.types import EquityPoint, PerformanceSummary, Trade
from stratbacktest.core.utils.errors import BacktestError

DAYS_PER_YEAR = 365.25
_ZERO_VARIANCE_TOLERANCE = 1e-12


def _equity_series(equity_curve: Sequence[EquityPoint]) -> pd.Series:
    index = pd.DatetimeIndex([pd.Timestamp(point.date) for point in equity_curve], name="date")
    return pd.Series([float(point.equity) for point in equity_curve], index=index, dtype=float)


def calculate_max_drawdown(equity: pd.Series) -> float:
    """
    Calculate the deepest peak-to-trough decline of an equity curve.

    Args:
        equity: Equity values in time order.

    Returns:
        Max drawdown as a non-positive percentage, ``0.0`` for a
        non-decreasing curve.
    """
    if equity.empty:
        return 0.0
    running_max = equity.cummax()
    drawdowns = equity / running_max - 1.0
    deepest = float(drawdowns.min())
    if deepest >= 0.0:
        return 0.0
    return deepest * 100.0


def calculate_sharpe_ratio(returns: pd.Series, bars_per_year: int) -> float:
    """
    Annualized Sharpe ratio of per-bar returns with zero risk-free rate.

    Uses the population standard deviation. A zero-variance (or empty) return
    series has a Sharpe ratio of ``0.0``.
    """
    if returns.empty:
        return 0.0
    deviation = float(returns.std(ddof=0))
    if not math.isfinite(deviation) or deviation <= _ZERO_VARIANCE_TOLERANCE:
        return 0.0
    return float(returns.mean()) / deviation * math.sqrt(bars_per_year)


def calculate_annualized_return(final_equity: float, initial_capital: float, days_spanned: int) -> float:
    """
    Compound annual growth rate in percent over a calendar-day span.

    A zero-day span returns the plain total return. A wiped-out account
    returns ``-100``. Growth too large to represent is capped at the largest
    finite float.
    """
    ratio = final_equity / initial_capital
    total_return = (ratio - 1.0) * 100.0
    if days_spanned <= 0:
        return total_return
    if ratio <= 0.0:
        return -100.0
    try:
        return math.expm1(math.log(ratio) * DAYS_PER_YEAR / days_spanned) * 100.0
    except OverflowError:
        return sys.float_info.max


def calculate_win_rate(trades: Sequence[Trade]) -> float:
    """Percentage of trades with positive PnL, ``0.0`` when there are no trades."""
    if not trades:
        return 0.0
    winners = sum(1 for trade in trades if trade.pnl > 0.0)
    return winners / len(trades) * 100.0


def calculate_profit_factor(trades: Sequence[Trade]) -> float:
    """
    Gross profit over gross loss.

    ``0.0`` when there is no gross profit. Runs with profits and no losses are
    capped at ``sys.float_info.max``.
    """
    gross_profit = sum(trade.pnl for trade in trades if trade.pnl > 0.0)
    gross_loss = -sum(trade.pnl for trade in trades if trade.pnl < 0.0)
    if gross_profit <= 0.0:
        return 0.0
    if gross_loss <= 0.0:
        return sys.float_info.max
    return gross_profit / gross_loss


def analyze(
    equity_curve: Sequence[EquityPoint],
    trades: Sequence[Trade],
    initial_capital: float,
    bars_per_year: int = 252,
    bars_in_market: int = 0,
) -> PerformanceSummary:
    """
    Reduce an equity curve and trade log to summary statistics.

    Args:
        equity_curve: One equity point per simulated bar.
        trades: Closed trades.
        initial_capital: Starting cash.
        bars_per_year: Annualization factor for the Sharpe ratio and volatility.
        bars_in_market: Bars with an open position, for the exposure figure.

    Returns:
        Performance summary with all numeric fields finite.

    Raises:
        BacktestError: If the inputs cannot describe a run.
    """
    if initial_capital <= 0.0 or not math.isfinite(initial_capital):
        raise BacktestError("initial_capital must be a finite number greater than 0.")
    if bars_per_year <= 0:
        raise BacktestError("bars_per_year must be greater than 0.")
    if not equity_curve:
        raise BacktestError("Cannot analyze an empty equity curve.")

    equity = _equity_series(equity_curve)
    final_equity = float(equity.iloc[-1])
    days_spanned = (equity_curve[-1].date - equity_curve[0].date).days

    returns = equity.pct_change().iloc[1:]
    deviation = float(returns.std(ddof=0)) if not returns.empty else 0.0
    annualized_volatility = deviation * math.sqrt(bars_per_year) * 100.0 if math.isfinite(deviation) else 0.0

    total_trades = len(trades)
    average_trade_return = (
        sum(trade.pnl_pct for trade in trades) / total_trades if total_trades else 0.0
    )

    return PerformanceSummary(
        total_return=(final_equity / initial_capital - 1.0) * 100.0,
        annualized_return=calculate_annualized_return(final_equity, initial_capital, days_spanned),
        sharpe_ratio=calculate_sharpe_ratio(returns, bars_per_year),
        max_drawdown=calculate_max_drawdown(equity),
        win_rate=calculate_win_rate(trades),
        total_trades=total_trades,
        annualized_volatility=annualized_volatility,
        final_equity=final_equity,
        exposure=bars_in_market / len(equity_curve) * 100.0,
        average_trade_return=average_trade_return,
        profit_factor=calculate_profit_factor(trades),
    )
