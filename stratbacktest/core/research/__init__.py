"""Research workflows built on independent backtest runs."""

from stratbacktest.core.research.sweep import SweepResult, SweepRow, run_parameter_sweep

__all__ = ["SweepResult", "SweepRow", "run_parameter_sweep"]
