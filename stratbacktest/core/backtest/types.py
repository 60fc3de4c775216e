"""Data structures for simulation and backtest results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from stratbacktest.core.utils.errors import error_code_for_exception


class Signal(str, Enum):
    """Strategy instruction for one bar."""

    ENTER_LONG = "enter_long"
    EXIT_LONG = "exit_long"
    HOLD = "hold"


@dataclass(frozen=True)
class Trade:
    """A closed round-trip long trade."""

    entry_date: date
    exit_date: date
    entry_price: float
    exit_price: float
    quantity: float
    pnl: float
    pnl_pct: float
    fees: float = 0.0
    forced_exit: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "entryDate": self.entry_date.isoformat(),
            "exitDate": self.exit_date.isoformat(),
            "entryPrice": self.entry_price,
            "exitPrice": self.exit_price,
            "quantity": self.quantity,
            "pnl": self.pnl,
            "pnlPct": self.pnl_pct,
            "fees": self.fees,
            "forcedExit": self.forced_exit,
        }


@dataclass(frozen=True)
class EquityPoint:
    """Mark-to-market portfolio value at one bar close."""

    date: date
    equity: float

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date.isoformat(), "equity": self.equity}


@dataclass(frozen=True)
class SimulationSettings:
    """
    Execution settings for one simulation run.

    Defaults are zero-cost fills, all-in sizing, long-only, liquidate at end.
    """

    initial_capital: float = 100_000.0
    position_fraction: float = 1.0
    liquidate_at_end: bool = True
    commission_bps: float = 0.0
    slippage_bps: float = 0.0
    whole_shares: bool = False
    bars_per_year: int = 252


@dataclass(frozen=True)
class SimulationResult:
    """Raw simulation output before performance analysis."""

    equity_curve: tuple[EquityPoint, ...]
    trades: tuple[Trade, ...]
    bars_in_market: int = 0


@dataclass(frozen=True)
class PerformanceSummary:
    """Summary statistics of one simulated run. Percentages are in percent units."""

    total_return: float
    annualized_return: float
    sharpe_ratio: float
    max_drawdown: float
    win_rate: float
    total_trades: int
    annualized_volatility: float = 0.0
    final_equity: float = 0.0
    exposure: float = 0.0
    average_trade_return: float = 0.0
    profit_factor: float = 0.0

    def metrics(self) -> dict[str, float]:
        """Flat float metric mapping used for persistence and manifests."""
        return {
            "total_return": self.total_return,
            "annualized_return": self.annualized_return,
            "sharpe_ratio": self.sharpe_ratio,
            "max_drawdown": self.max_drawdown,
            "win_rate": self.win_rate,
            "total_trades": float(self.total_trades),
            "annualized_volatility": self.annualized_volatility,
            "final_equity": self.final_equity,
            "exposure": self.exposure,
            "average_trade_return": self.average_trade_return,
            "profit_factor": self.profit_factor,
        }


@dataclass(frozen=True)
class BacktestResult:
    """Final immutable aggregate returned to the caller of one backtest run."""

    ticker: str
    strategy: str
    parameters: dict[str, float]
    initial_capital: float
    summary: PerformanceSummary
    equity_curve: tuple[EquityPoint, ...] = field(default_factory=tuple)
    trades: tuple[Trade, ...] = field(default_factory=tuple)

    @property
    def total_return(self) -> float:
        return self.summary.total_return

    @property
    def annualized_return(self) -> float:
        return self.summary.annualized_return

    @property
    def sharpe_ratio(self) -> float:
        return self.summary.sharpe_ratio

    @property
    def max_drawdown(self) -> float:
        return self.summary.max_drawdown

    @property
    def win_rate(self) -> float:
        return self.summary.win_rate

    @property
    def total_trades(self) -> int:
        return self.summary.total_trades

    @property
    def metrics(self) -> dict[str, float]:
        return self.summary.metrics()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase payload consumed by the UI."""
        return {
            "ticker": self.ticker,
            "strategy": self.strategy,
            "parameters": dict(sorted(self.parameters.items())),
            "initialCapital": self.initial_capital,
            "totalReturn": self.summary.total_return,
            "annualizedReturn": self.summary.annualized_return,
            "sharpeRatio": self.summary.sharpe_ratio,
            "maxDrawdown": self.summary.max_drawdown,
            "winRate": self.summary.win_rate,
            "totalTrades": self.summary.total_trades,
            "annualizedVolatility": self.summary.annualized_volatility,
            "finalEquity": self.summary.final_equity,
            "exposure": self.summary.exposure,
            "averageTradeReturn": self.summary.average_trade_return,
            "profitFactor": self.summary.profit_factor,
            "equityCurve": [point.to_dict() for point in self.equity_curve],
            "trades": [trade.to_dict() for trade in self.trades],
        }


@dataclass(frozen=True)
class BacktestFailure:
    """Tagged failure value for a run that could not produce a result."""

    error_code: str
    error_type: str
    message: str
    ticker: str | None = None
    strategy: str | None = None

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        ticker: str | None = None,
        strategy: str | None = None,
    ) -> BacktestFailure:
        return cls(
            error_code=error_code_for_exception(exc),
            error_type=exc.__class__.__name__,
            message=str(exc),
            ticker=ticker,
            strategy=strategy,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "errorType": self.error_type,
            "message": self.message,
            "ticker": self.ticker,
            "strategy": self.strategy,
        }


BacktestOutcome = BacktestResult | BacktestFailure
