"""Service-layer workflows for CLI and API orchestration."""

from stratbacktest.core.services.backtest_service import (
    DEFAULT_DB_PATH,
    BacktestRequest,
    RunOutcome,
    SweepOutcome,
    execute_backtest,
    get_experiment,
    list_experiments,
    run_backtest_request,
    run_experiment,
    run_sweep,
    run_sweep_request,
)

__all__ = [
    "DEFAULT_DB_PATH",
    "BacktestRequest",
    "RunOutcome",
    "SweepOutcome",
    "execute_backtest",
    "get_experiment",
    "list_experiments",
    "run_backtest_request",
    "run_experiment",
    "run_sweep",
    "run_sweep_request",
]
