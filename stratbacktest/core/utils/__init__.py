"""Utility helpers."""

from stratbacktest.core.utils.env import env_int, env_str, load_dotenv
from stratbacktest.core.utils.errors import (
    ArtifactError,
    BacktestError,
    CacheError,
    ConfigurationError,
    DataSourceError,
    ExperimentNotFoundError,
    ExperimentStoreError,
    InsufficientDataError,
    StratBacktestError,
    SweepError,
    error_code_for_exception,
    exit_code_for_exception,
)
from stratbacktest.core.utils.logging import configure_logging, get_logger
from stratbacktest.core.utils.manifest import RunManifestWriter
from stratbacktest.core.utils.plotting import get_matplotlib_pyplot, save_equity_curve_plot

__all__ = [
    "ArtifactError",
    "BacktestError",
    "CacheError",
    "ConfigurationError",
    "DataSourceError",
    "ExperimentNotFoundError",
    "ExperimentStoreError",
    "InsufficientDataError",
    "RunManifestWriter",
    "StratBacktestError",
    "SweepError",
    "configure_logging",
    "env_int",
    "env_str",
    "error_code_for_exception",
    "exit_code_for_exception",
    "get_logger",
    "get_matplotlib_pyplot",
    "load_dotenv",
    "save_equity_curve_plot",
]
