"""Programmatic service workflows shared by the CLI and API."""

from __future__ import annotations

import json
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import Any

from stratbacktest.core.backtest.engine import run_backtest
from stratbacktest.core.backtest.types import (
    BacktestFailure,
    BacktestOutcome,
    BacktestResult,
    SimulationSettings,
)
from stratbacktest.core.config import (
    AppConfig,
    dump_config_to_yaml,
    load_config,
    load_config_from_yaml_text,
)
from stratbacktest.core.data.loader import PriceLoader, build_loader
from stratbacktest.core.data.series import PriceSeries
from stratbacktest.core.experiments.store import ExperimentRecord, ExperimentStore
from stratbacktest.core.research.sweep import SweepResult, run_parameter_sweep
from stratbacktest.core.strategies import build_strategy, strategy_parameters
from stratbacktest.core.utils.errors import (
    ArtifactError,
    ConfigurationError,
    ExperimentNotFoundError,
    StratBacktestError,
)
from stratbacktest.core.utils.logging import get_logger
from stratbacktest.core.utils.manifest import RunManifestWriter
from stratbacktest.core.utils.plotting import save_equity_curve_plot

DEFAULT_DB_PATH = Path("data/experiments.sqlite")
DEFAULT_LOOKBACK_DAYS = 365 * 5
ProgressCallback = Callable[[str], None]
_LOGGER_NAME = "stratbacktest.core.services.backtest_service"


@dataclass(frozen=True)
class BacktestRequest:
    """One ad-hoc backtest: ticker, strategy tag, parameter overrides, capital and date range."""

    ticker: str
    strategy: str
    parameters: dict[str, Any] = field(default_factory=dict)
    initial_capital: float = 100_000.0
    start: date | None = None
    end: date | None = None

    def date_range(self, today: date | None = None) -> tuple[date, date]:
        """Resolve the inclusive range; a missing end is today, a missing start is five years earlier."""
        end = self.end or today or datetime.now(tz=UTC).date()
        start = self.start or (end - timedelta(days=DEFAULT_LOOKBACK_DAYS))
        if start > end:
            raise ConfigurationError(
                f"Date range start {start.isoformat()} must be before or equal to end {end.isoformat()}."
            )
        return start, end


@dataclass(frozen=True)
class RunOutcome:
    """Result payload for one completed, persisted backtest run."""

    experiment_id: str
    result: BacktestResult
    experiment_db_path: Path
    artifact_paths: list[str]
    source_experiment_id: str | None
    manifest_path: Path


@dataclass(frozen=True)
class SweepOutcome:
    """Result payload for one completed, persisted sweep."""

    experiment_id: str
    sweep: SweepResult
    experiment_db_path: Path
    artifact_paths: list[str]
    manifest_path: Path


def _emit_progress(callback: ProgressCallback | None, message: str) -> None:
    if callback is not None:
        callback(message)


def _settings_with_capital(settings: SimulationSettings | None, initial_capital: float) -> SimulationSettings:
    if isinstance(initial_capital, bool) or not math.isfinite(initial_capital) or initial_capital <= 0:
        raise ConfigurationError(f"initialCapital must be a finite number > 0, got {initial_capital!r}.")
    base = settings or SimulationSettings()
    return SimulationSettings(
        initial_capital=float(initial_capital),
        position_fraction=base.position_fraction,
        liquidate_at_end=base.liquidate_at_end,
        commission_bps=base.commission_bps,
        slippage_bps=base.slippage_bps,
        whole_shares=base.whole_shares,
        bars_per_year=base.bars_per_year,
    )


def run_backtest_request(
    request: BacktestRequest,
    loader: PriceLoader,
    settings: SimulationSettings | None = None,
) -> BacktestResult:
    """
    Validate a request, load its prices and run the engine.

    The strategy, capital and date range are validated before any data is
    loaded, so configuration errors never touch the price source.

    Raises:
        ConfigurationError: Unknown strategy, bad parameters, capital or date range.
        DataSourceError: Price loading failed.
        InsufficientDataError: The loaded series is empty or malformed.
    """
    strategy = build_strategy(request.strategy, request.parameters)
    resolved_settings = _settings_with_capital(settings, request.initial_capital)
    start, end = request.date_range()
    series = loader.load(request.ticker, start, end)
    return run_backtest(series, strategy, resolved_settings)


def execute_backtest(
    request: BacktestRequest,
    loader: PriceLoader,
    settings: SimulationSettings | None = None,
) -> BacktestOutcome:
    """
    Run a backtest request and return a result or a tagged failure value.

    Only typed errors become :class:`BacktestFailure`; anything else propagates.
    """
    try:
        return run_backtest_request(request, loader, settings)
    except StratBacktestError as exc:
        get_logger(_LOGGER_NAME).warning(
            "Backtest %s/%s failed: %s", request.ticker, request.strategy, exc
        )
        return BacktestFailure.from_exception(
            exc,
            ticker=request.ticker.strip().upper() or None,
            strategy=request.strategy,
        )


def run_sweep_request(
    request: BacktestRequest,
    grid: dict[str, list[Any]],
    loader: PriceLoader,
    settings: SimulationSettings | None = None,
    max_workers: int = 4,
) -> SweepResult:
    """Load prices once and sweep ``grid`` over the request's base parameters."""
    build_strategy(request.strategy, request.parameters)
    resolved_settings = _settings_with_capital(settings, request.initial_capital)
    start, end = request.date_range()
    series = loader.load(request.ticker, start, end)
    return run_parameter_sweep(
        series=series,
        strategy_name=request.strategy,
        base_params=request.parameters,
        grid=grid,
        settings=resolved_settings,
        max_workers=max_workers,
    )


def _load_config_for_run(
    config_path: Path | None,
    source_experiment_id: str | None,
    db_path: Path,
) -> tuple[AppConfig, str | None]:
    """Load config for a run from file or from a stored experiment."""
    has_config = config_path is not None
    has_source_experiment = bool(source_experiment_id)
    if has_config and has_source_experiment:
        raise ConfigurationError("Use either config_path or source_experiment_id, not both.")
    if not has_config and not has_source_experiment:
        raise ConfigurationError("Either config_path or source_experiment_id must be provided.")

    if source_experiment_id:
        record = get_experiment(source_experiment_id, db_path=db_path)
        return load_config_from_yaml_text(record.config_yaml), source_experiment_id

    assert config_path is not None
    return load_config(config_path), None


def _load_series(
    app_config: AppConfig,
    progress_callback: ProgressCallback | None,
) -> PriceSeries:
    data = app_config.data
    _emit_progress(
        progress_callback,
        f"Loading {data.ticker} data from {data.start.isoformat()} to {data.end.isoformat()} via {data.provider}",
    )
    loader = build_loader(data.provider, cache_dir=data.cache_dir, csv_dir=data.csv_dir)
    series = loader.load(data.ticker, data.start, data.end)
    _emit_progress(
        progress_callback,
        f"{series.ticker}: bars={len(series)}, date_range=[{series.start}, {series.end}]",
    )
    return series


def _start_manifest(
    command: str,
    manifest_name: str,
    app_config: AppConfig,
    store: ExperimentStore,
    experiment_id: str,
    config_path: Path | None,
    source_experiment_id: str | None,
) -> RunManifestWriter:
    writer = RunManifestWriter(
        output_dir=app_config.output.artifacts_dir / experiment_id,
        command=command,
        run_id=experiment_id,
        manifest_name=manifest_name,
    )
    writer.set_inputs(
        config_path=config_path,
        source_experiment_id=source_experiment_id,
        db_path=store.db_path,
    )
    writer.set_context(
        ticker=app_config.data.ticker,
        strategy=app_config.strategy.name,
        parameters=dict(app_config.strategy.params),
        start=app_config.data.start.isoformat(),
        end=app_config.data.end.isoformat(),
    )
    return writer


def _write_failure_manifest(writer: RunManifestWriter | None, exc: Exception, command: str) -> None:
    if writer is None:
        return
    try:
        writer.mark_failure(exc)
        writer.write()
    except Exception as manifest_exc:
        get_logger(_LOGGER_NAME).error("Failed to write failure manifest for %s: %s", command, manifest_exc)


def run_experiment(
    config_path: Path | None = None,
    source_experiment_id: str | None = None,
    db_path: Path = DEFAULT_DB_PATH,
    progress_callback: ProgressCallback | None = None,
) -> RunOutcome:
    """
    Run a configured backtest and persist it with its artifacts.

    Args:
        config_path: YAML config file path.
        source_experiment_id: Existing experiment id to re-run instead.
        db_path: Experiment database used for source lookups and reruns.
        progress_callback: Optional callback for status messages.

    Returns:
        Completed run outcome.
    """
    writer: RunManifestWriter | None = None
    try:
        app_config, resolved_source_id = _load_config_for_run(config_path, source_experiment_id, db_path)
        store = ExperimentStore(db_path if resolved_source_id is not None else app_config.experiments.db_path)
        experiment_id = store.next_experiment_id()
        writer = _start_manifest(
            "run",
            "run_manifest.json",
            app_config,
            store,
            experiment_id,
            config_path,
            resolved_source_id,
        )
        # Unknown strategies fail here, before any data access.
        strategy = build_strategy(app_config.strategy.name, app_config.strategy.params)
        writer.set_context(
            ticker=app_config.data.ticker,
            strategy=strategy.name,
            parameters=strategy_parameters(strategy),
            start=app_config.data.start.isoformat(),
            end=app_config.data.end.isoformat(),
        )

        series = _load_series(app_config, progress_callback)
        result = run_backtest(series, strategy, app_config.simulation.to_settings())
        _emit_progress(
            progress_callback,
            f"Simulated {len(result.equity_curve)} bars: trades={result.total_trades}, "
            f"total_return={result.total_return:.4f}%",
        )

        run_artifact_dir = app_config.output.artifacts_dir / experiment_id
        artifact_paths: list[str] = []
        if app_config.output.save_equity_plot:
            plot_path = save_equity_curve_plot(
                equity_curve=result.equity_curve,
                output_dir=run_artifact_dir,
                filename=app_config.output.equity_plot_filename,
                trades=result.trades,
                title=f"{result.ticker} {result.strategy}",
            )
            artifact_paths.append(str(plot_path))
        result_path = run_artifact_dir / "result.json"
        try:
            run_artifact_dir.mkdir(parents=True, exist_ok=True)
            result_path.write_text(json.dumps(result.to_dict(), indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            raise ArtifactError(f"Failed to write result payload to {result_path}: {exc}") from exc
        artifact_paths.append(str(result_path))

        tags = list(app_config.experiments.tags)
        if resolved_source_id is not None:
            tags.append(f"rerun_of:{resolved_source_id}")

        record = store.create_experiment(
            experiment_id=experiment_id,
            ticker=result.ticker,
            strategy=result.strategy,
            parameters=dict(result.parameters),
            config_yaml=dump_config_to_yaml(app_config),
            metrics=result.metrics,
            artifact_paths=artifact_paths,
            tags=tags,
        )
        writer.mark_success(
            metrics=result.metrics,
            artifact_paths=artifact_paths,
            extra={"experiment_id": record.experiment_id, "source_experiment_id": resolved_source_id},
        )
        manifest_path = writer.write()
        record = store.append_artifacts(record.experiment_id, [str(manifest_path)])

        return RunOutcome(
            experiment_id=record.experiment_id,
            result=result,
            experiment_db_path=store.db_path,
            artifact_paths=list(record.artifact_paths),
            source_experiment_id=resolved_source_id,
            manifest_path=manifest_path,
        )
    except Exception as exc:
        _write_failure_manifest(writer, exc, "run")
        raise


def run_sweep(
    config_path: Path | None = None,
    source_experiment_id: str | None = None,
    db_path: Path = DEFAULT_DB_PATH,
    progress_callback: ProgressCallback | None = None,
    metric: str = "sharpe_ratio",
) -> SweepOutcome:
    """
    Run the configured parameter sweep and persist the sweep table.

    The stored metrics are those of the best row by ``metric``.
    """
    writer: RunManifestWriter | None = None
    try:
        app_config, resolved_source_id = _load_config_for_run(config_path, source_experiment_id, db_path)
        store = ExperimentStore(db_path if resolved_source_id is not None else app_config.experiments.db_path)
        experiment_id = store.next_experiment_id(prefix="sweep")
        writer = _start_manifest(
            "sweep",
            "sweep_manifest.json",
            app_config,
            store,
            experiment_id,
            config_path,
            resolved_source_id,
        )
        build_strategy(app_config.strategy.name, app_config.strategy.params)

        series = _load_series(app_config, progress_callback)
        sweep = run_parameter_sweep(
            series=series,
            strategy_name=app_config.strategy.name,
            base_params=dict(app_config.strategy.params),
            grid={key: list(values) for key, values in app_config.sweep.parameter_grid.items()},
            settings=app_config.simulation.to_settings(),
            max_workers=app_config.sweep.max_workers,
        )
        best_row = sweep.best(metric)
        assert best_row is not None and best_row.result is not None
        _emit_progress(
            progress_callback,
            f"Sweep finished: succeeded={len(sweep.succeeded)}, failed={len(sweep.failed)}, best={best_row.label}",
        )

        output_dir = app_config.output.artifacts_dir / experiment_id
        table_path = output_dir / "sweep_results.json"
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            table_path.write_text(json.dumps(sweep.to_dict(metric), indent=2) + "\n", encoding="utf-8")
        except OSError as exc:
            raise ArtifactError(f"Failed to write sweep table to {table_path}: {exc}") from exc
        artifact_paths = [str(table_path)]

        tags = [*app_config.experiments.tags, "sweep"]
        if resolved_source_id is not None:
            tags.append(f"rerun_of:{resolved_source_id}")
        record = store.create_experiment(
            experiment_id=experiment_id,
            ticker=series.ticker,
            strategy=sweep.strategy,
            parameters=dict(best_row.parameters),
            config_yaml=dump_config_to_yaml(app_config),
            metrics=best_row.result.metrics,
            artifact_paths=artifact_paths,
            tags=tags,
            kind="sweep",
        )
        writer.mark_success(
            metrics=best_row.result.metrics,
            artifact_paths=artifact_paths,
            extra={
                "experiment_id": record.experiment_id,
                "best": best_row.label,
                "ranked_by": metric,
                "succeeded": len(sweep.succeeded),
                "failed": len(sweep.failed),
            },
        )
        manifest_path = writer.write()
        record = store.append_artifacts(record.experiment_id, [str(manifest_path)])

        return SweepOutcome(
            experiment_id=record.experiment_id,
            sweep=sweep,
            experiment_db_path=store.db_path,
            artifact_paths=list(record.artifact_paths),
            manifest_path=manifest_path,
        )
    except Exception as exc:
        _write_failure_manifest(writer, exc, "sweep")
        raise


def list_experiments(
    db_path: Path = DEFAULT_DB_PATH,
    limit: int = 50,
    ticker: str | None = None,
    strategy: str | None = None,
) -> list[ExperimentRecord]:
    """List stored runs newest first."""
    store = ExperimentStore(db_path)
    return store.list_experiments(limit=limit, ticker=ticker, strategy=strategy)


def get_experiment(experiment_id: str, db_path: Path = DEFAULT_DB_PATH) -> ExperimentRecord:
    """
    Load one stored run by id.

    Raises:
        ExperimentNotFoundError: If the id is unknown.
    """
    store = ExperimentStore(db_path)
    record = store.get_experiment(experiment_id)
    if record is None:
        raise ExperimentNotFoundError(f"Experiment '{experiment_id}' not found in {store.db_path}.")
    return record
