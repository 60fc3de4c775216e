"""Parallel parameter sweeps over independent backtest runs."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from itertools import product
from typing import Any

from stratbacktest.core.backtest.engine import run_backtest
from stratbacktest.core.backtest.types import BacktestFailure, BacktestResult, SimulationSettings
from stratbacktest.core.data.series import PriceSeries
from stratbacktest.core.strategies import STRATEGY_TYPES, build_strategy, strategy_parameters
from stratbacktest.core.utils.errors import ConfigurationError, StratBacktestError, SweepError
from stratbacktest.core.utils.logging import get_logger

_LOGGER_NAME = "stratbacktest.core.research.sweep"
RANKING_METRICS: tuple[str, ...] = (
    "total_return",
    "annualized_return",
    "sharpe_ratio",
    "max_drawdown",
    "win_rate",
)


@dataclass(frozen=True)
class SweepRow:
    """One grid combination and its outcome."""

    label: str
    parameters: dict[str, Any]
    result: BacktestResult | None = None
    failure: BacktestFailure | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "label": self.label,
            "parameters": dict(sorted(self.parameters.items())),
            "status": "success" if self.ok else "failed",
        }
        if self.result is not None:
            payload["metrics"] = self.result.metrics
        if self.failure is not None:
            payload["failure"] = self.failure.to_dict()
        return payload


@dataclass(frozen=True)
class SweepResult:
    """Rows in deterministic grid order."""

    ticker: str
    strategy: str
    rows: tuple[SweepRow, ...]

    @property
    def succeeded(self) -> list[SweepRow]:
        return [row for row in self.rows if row.ok]

    @property
    def failed(self) -> list[SweepRow]:
        return [row for row in self.rows if not row.ok]

    def best(self, metric: str = "sharpe_ratio") -> SweepRow | None:
        """
        Return the successful row with the highest ``metric``.

        Ties keep the earliest row in grid order.
        """
        if metric not in RANKING_METRICS:
            raise ConfigurationError(
                f"Unknown ranking metric '{metric}'. Expected one of: {', '.join(RANKING_METRICS)}."
            )
        best_row: SweepRow | None = None
        best_value = float("-inf")
        for row in self.succeeded:
            assert row.result is not None
            value = row.result.metrics[metric]
            if best_row is None or value > best_value:
                best_row = row
                best_value = value
        return best_row

    def to_dict(self, metric: str = "sharpe_ratio") -> dict[str, Any]:
        best_row = self.best(metric)
        return {
            "ticker": self.ticker,
            "strategy": self.strategy,
            "rankedBy": metric,
            "best": best_row.label if best_row is not None else None,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "rows": [row.to_dict() for row in self.rows],
        }


def _format_value(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _parameter_combinations(
    base_params: dict[str, Any],
    parameter_grid: dict[str, list[Any]],
) -> list[tuple[str, dict[str, Any]]]:
    """Expand a grid into labelled parameter maps in sorted-key product order."""
    if not parameter_grid:
        return [("baseline", dict(base_params))]

    keys = sorted(parameter_grid)
    combinations: list[tuple[str, dict[str, Any]]] = []
    for values in product(*(parameter_grid[key] for key in keys)):
        params = dict(base_params)
        label_parts: list[str] = []
        for key, value in zip(keys, values, strict=True):
            params[key] = value
            label_parts.append(f"{key}={_format_value(value)}")
        combinations.append((",".join(label_parts), params))
    return combinations


def _run_combination(
    series: PriceSeries,
    strategy_name: str,
    label: str,
    params: dict[str, Any],
    settings: SimulationSettings,
) -> SweepRow:
    try:
        strategy = build_strategy(strategy_name, params)
        result = run_backtest(series, strategy, settings)
    except StratBacktestError as exc:
        get_logger(_LOGGER_NAME).warning("Sweep combination %s failed: %s", label, exc)
        return SweepRow(
            label=label,
            parameters=dict(params),
            failure=BacktestFailure.from_exception(exc, ticker=series.ticker, strategy=strategy_name),
        )
    return SweepRow(label=label, parameters=strategy_parameters(strategy), result=result)


def run_parameter_sweep(
    series: PriceSeries,
    strategy_name: str,
    base_params: dict[str, Any] | None = None,
    grid: dict[str, list[Any]] | None = None,
    settings: SimulationSettings | None = None,
    max_workers: int = 4,
) -> SweepResult:
    """
    Backtest every grid combination in parallel.

    Each combination owns its own strategy record and simulation state; the
    price series is shared read-only.

    Args:
        series: Validated price series.
        strategy_name: Catalog tag.
        base_params: Parameters applied before grid overrides.
        grid: Parameter name -> candidate values.
        settings: Execution settings shared by every run.
        max_workers: Thread pool size.

    Returns:
        Sweep rows in grid order.

    Raises:
        ConfigurationError: For an unknown strategy, empty grid axis or bad worker count.
        SweepError: If every combination failed.
    """
    name = str(strategy_name).strip().lower()
    if name not in STRATEGY_TYPES:
        raise ConfigurationError(
            f"Unknown strategy '{strategy_name}'. Expected one of: {', '.join(sorted(STRATEGY_TYPES))}."
        )
    if max_workers < 1:
        raise ConfigurationError("max_workers must be >= 1.")
    resolved_grid = dict(grid or {})
    for key, values in resolved_grid.items():
        if not values:
            raise ConfigurationError(f"Parameter grid axis '{key}' must be a non-empty list.")

    resolved_settings = settings or SimulationSettings()
    combinations = _parameter_combinations(dict(base_params or {}), resolved_grid)
    logger = get_logger(_LOGGER_NAME)
    logger.info(
        "Sweeping %s on %s: combinations=%d, max_workers=%d",
        name,
        series.ticker,
        len(combinations),
        max_workers,
    )

    with ThreadPoolExecutor(max_workers=min(max_workers, len(combinations))) as executor:
        futures = [
            executor.submit(_run_combination, series, name, label, params, resolved_settings)
            for label, params in combinations
        ]
        rows = tuple(future.result() for future in futures)

    if not any(row.ok for row in rows):
        first_failure = rows[0].failure
        detail = first_failure.message if first_failure is not None else "no rows"
        raise SweepError(f"All {len(rows)} sweep combinations failed; first error: {detail}")
    return SweepResult(ticker=series.ticker, strategy=name, rows=rows)
