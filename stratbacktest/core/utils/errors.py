"""Domain-specific error taxonomy for stratbacktest."""

from __future__ import annotations


class StratBacktestError(Exception):
    """Base stratbacktest error with CLI exit-code and API error-code metadata."""

    exit_code: int = 1
    error_code: str = "stratbacktest_error"


class ConfigurationError(StratBacktestError, ValueError):
    """Unknown strategy, invalid parameter, malformed date range or config file."""

    exit_code = 2
    error_code = "configuration_error"


class DataSourceError(StratBacktestError, ConnectionError):
    """Price data collaborator failed (network, IO, not found, bad payload)."""

    exit_code = 3
    error_code = "data_source_error"


class InsufficientDataError(StratBacktestError, ValueError):
    """Price series is empty or malformed."""

    exit_code = 4
    error_code = "insufficient_data"


class CacheError(StratBacktestError, RuntimeError):
    """Cache read/write error."""

    exit_code = 5
    error_code = "cache_error"


class BacktestError(StratBacktestError, ValueError):
    """Simulation or analysis error."""

    exit_code = 7
    error_code = "backtest_error"


class ExperimentStoreError(StratBacktestError, ValueError):
    """Experiment tracking storage/query error."""

    exit_code = 8
    error_code = "experiment_store_error"


class ExperimentNotFoundError(ExperimentStoreError):
    """Requested run id is not in the store."""


class SweepError(StratBacktestError, ValueError):
    """Parameter sweep execution error."""

    exit_code = 9
    error_code = "sweep_error"


class ArtifactError(StratBacktestError, RuntimeError):
    """Artifact write/read error."""

    exit_code = 10
    error_code = "artifact_error"


def exit_code_for_exception(exc: Exception) -> int:
    """
    Resolve process exit code for an exception.

    Args:
        exc: Raised exception.

    Returns:
        Integer process exit code.
    """
    return int(getattr(exc, "exit_code", 1))


def error_code_for_exception(exc: Exception) -> str:
    """Resolve the API error code for an exception, ``internal_error`` if untyped."""
    if isinstance(exc, StratBacktestError):
        return exc.error_code
    return "internal_error"
