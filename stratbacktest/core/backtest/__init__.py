"""Backtest result types and performance metrics.

Import the simulation engine from :mod:`stratbacktest.core.backtest.engine`.
"""

from stratbacktest.core.backtest.metrics import analyze, calculate_max_drawdown
from stratbacktest.core.backtest.types import (
    BacktestFailure,
    BacktestOutcome,
    BacktestResult,
    EquityPoint,
    PerformanceSummary,
    Signal,
    SimulationResult,
    SimulationSettings,
    Trade,
)

__all__ = [
    "BacktestFailure",
    "BacktestOutcome",
    "BacktestResult",
    "EquityPoint",
    "PerformanceSummary",
    "Signal",
    "SimulationResult",
    "SimulationSettings",
    "Trade",
    "analyze",
    "calculate_max_drawdown",
]
