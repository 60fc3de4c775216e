"""stratbacktest command-line interface."""

from __future__ import annotations

import json
from datetime import UTC, date
from pathlib import Path

import typer

from stratbacktest.core.backtest.types import BacktestFailure
from stratbacktest.core.data.loader import build_loader
from stratbacktest.core.experiments.store import ExperimentRecord
from stratbacktest.core.services import (
    DEFAULT_DB_PATH,
    BacktestRequest,
    get_experiment,
    list_experiments,
    run_backtest_request,
    run_experiment,
    run_sweep,
)
from stratbacktest.core.strategies import describe_catalog
from stratbacktest.core.utils.env import load_dotenv
from stratbacktest.core.utils.errors import ConfigurationError, exit_code_for_exception
from stratbacktest.core.utils.logging import configure_logging, get_logger

app = typer.Typer(help="StratBacktest CLI", no_args_is_help=True)

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
    help="Path to YAML configuration file.",
)
SOURCE_EXPERIMENT_OPTION = typer.Option(
    None,
    "--experiment",
    help="Existing experiment id to re-run from its stored config.",
)
EXPERIMENT_OPTION = typer.Option(..., "--experiment", help="Experiment identifier.")
DB_PATH_OPTION = typer.Option(
    DEFAULT_DB_PATH,
    "--db-path",
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
    help="SQLite experiment database path.",
)
RANK_BY_OPTION = typer.Option("sharpe_ratio", "--rank-by", help="Metric used to pick the best row.")
LIMIT_OPTION = typer.Option(50, "--limit", min=1, help="Maximum rows to show.")
TICKER_FILTER_OPTION = typer.Option(None, "--ticker", help="Only show runs for this ticker.")
STRATEGY_FILTER_OPTION = typer.Option(None, "--strategy", help="Only show runs for this strategy.")

TICKER_OPTION = typer.Option(..., "--ticker", help="Ticker symbol.")
STRATEGY_OPTION = typer.Option("dual_ma", "--strategy", help="Strategy name: dual_ma, rsi or breakout.")
PARAM_OPTION = typer.Option(None, "--param", help="Strategy parameter override as key=value; repeatable.")
CAPITAL_OPTION = typer.Option(100_000.0, "--capital", help="Initial capital.")
START_OPTION = typer.Option(None, "--start", help="Start date (YYYY-MM-DD); defaults to five years before end.")
END_OPTION = typer.Option(None, "--end", help="End date (YYYY-MM-DD); defaults to today.")
PROVIDER_OPTION = typer.Option("eodhd", "--provider", help="Price data provider: eodhd or csv.")
CSV_DIR_OPTION = typer.Option(None, "--csv-dir", file_okay=False, help="Directory of <TICKER>.csv files.")
CACHE_DIR_OPTION = typer.Option(Path("data/cache"), "--cache-dir", file_okay=False, help="Parquet cache directory.")

_METRIC_ORDER: tuple[str, ...] = (
    "total_return",
    "annualized_return",
    "sharpe_ratio",
    "max_drawdown",
    "win_rate",
    "total_trades",
    "annualized_volatility",
    "exposure",
    "final_equity",
)


@app.callback()
def callback() -> None:
    """StratBacktest CLI commands."""


def _print_metrics(metrics: dict[str, float]) -> None:
    for key in _METRIC_ORDER:
        if key in metrics:
            typer.echo(f"{key}={metrics[key]:.6f}")


def _print_experiment_row(record: ExperimentRecord) -> None:
    timestamp = record.timestamp.astimezone(UTC).isoformat()
    sharpe = float(record.metrics.get("sharpe_ratio", 0.0))
    tags = ",".join(record.tags) if record.tags else "-"
    typer.echo(
        f"{record.experiment_id} | {timestamp} | {record.kind} | {record.ticker} | "
        f"{record.strategy} | {sharpe:.6f} | {tags}"
    )


def _handle_cli_exception(logger_name: str, context: str, exc: Exception) -> None:
    """Log diagnostics and exit with the typed exit code."""
    get_logger(logger_name).exception("%s failed: %s", context, exc)
    raise typer.Exit(code=exit_code_for_exception(exc)) from None


def _parse_params(raw_params: list[str] | None) -> dict[str, float]:
    params: dict[str, float] = {}
    for item in raw_params or []:
        key, separator, value = item.partition("=")
        if not separator or not key.strip():
            raise ConfigurationError(f"Invalid --param '{item}'; expected key=value.")
        try:
            params[key.strip()] = float(value)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid --param '{item}'; value must be numeric.") from exc
    return params


def _parse_date(label: str, value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {label} date '{value}'; expected YYYY-MM-DD.") from exc


@app.command("run")
def run(
    config: Path | None = CONFIG_OPTION,
    experiment: str | None = SOURCE_EXPERIMENT_OPTION,
    db_path: Path = DB_PATH_OPTION,
) -> None:
    """
    Run a configured backtest and persist it.

    Provide one of:
    - ``--config`` to run from YAML config
    - ``--experiment`` to re-run from stored config
    """
    load_dotenv(Path(".env"))
    configure_logging()
    try:
        outcome = run_experiment(
            config_path=config,
            source_experiment_id=experiment,
            db_path=db_path,
            progress_callback=typer.echo,
        )
    except Exception as exc:
        _handle_cli_exception(__name__, "Run command", exc)

    result = outcome.result
    typer.echo(f"ticker={result.ticker}")
    typer.echo(f"strategy={result.strategy}")
    typer.echo(f"parameters={json.dumps(result.parameters, sort_keys=True)}")
    _print_metrics(result.metrics)
    typer.echo(f"experiment_id={outcome.experiment_id}")
    typer.echo(f"experiments_db={outcome.experiment_db_path}")
    for path in outcome.artifact_paths:
        typer.echo(f"artifact={path}")
    if outcome.source_experiment_id is not None:
        typer.echo(f"rerun_from={outcome.source_experiment_id}")


@app.command("backtest")
def backtest(
    ticker: str = TICKER_OPTION,
    strategy: str = STRATEGY_OPTION,
    param: list[str] | None = PARAM_OPTION,
    capital: float = CAPITAL_OPTION,
    start: str | None = START_OPTION,
    end: str | None = END_OPTION,
    provider: str = PROVIDER_OPTION,
    csv_dir: Path | None = CSV_DIR_OPTION,
    cache_dir: Path = CACHE_DIR_OPTION,
) -> None:
    """Run one ad-hoc backtest and print the JSON result."""
    load_dotenv(Path(".env"))
    configure_logging()
    request: BacktestRequest | None = None
    try:
        request = BacktestRequest(
            ticker=ticker,
            strategy=strategy,
            parameters=_parse_params(param),
            initial_capital=capital,
            start=_parse_date("--start", start),
            end=_parse_date("--end", end),
        )
        loader = build_loader(provider, cache_dir=cache_dir, csv_dir=csv_dir)
        result = run_backtest_request(request, loader)
    except Exception as exc:
        failure = BacktestFailure.from_exception(exc, ticker=ticker.strip().upper(), strategy=strategy)
        typer.echo(json.dumps(failure.to_dict(), indent=2))
        _handle_cli_exception(__name__, "Backtest command", exc)

    typer.echo(json.dumps(result.to_dict(), indent=2))


@app.command("sweep")
def sweep(
    config: Path | None = CONFIG_OPTION,
    experiment: str | None = SOURCE_EXPERIMENT_OPTION,
    db_path: Path = DB_PATH_OPTION,
    rank_by: str = RANK_BY_OPTION,
) -> None:
    """Run the configured parameter sweep and persist the sweep table."""
    load_dotenv(Path(".env"))
    configure_logging()
    try:
        outcome = run_sweep(
            config_path=config,
            source_experiment_id=experiment,
            db_path=db_path,
            progress_callback=typer.echo,
            metric=rank_by,
        )
    except Exception as exc:
        _handle_cli_exception(__name__, "Sweep command", exc)

    result = outcome.sweep
    typer.echo(f"ticker={result.ticker}")
    typer.echo(f"strategy={result.strategy}")
    typer.echo("label | status | total_return | sharpe_ratio | max_drawdown | trades")
    for row in result.rows:
        if row.result is None:
            error = row.failure.error_code if row.failure is not None else "unknown"
            typer.echo(f"{row.label} | failed:{error} | - | - | - | -")
            continue
        metrics = row.result.metrics
        typer.echo(
            f"{row.label} | ok | {metrics['total_return']:.4f} | {metrics['sharpe_ratio']:.4f} | "
            f"{metrics['max_drawdown']:.4f} | {int(metrics['total_trades'])}"
        )
    best_row = result.best(rank_by)
    typer.echo(f"best={best_row.label if best_row is not None else '-'}")
    typer.echo(f"experiment_id={outcome.experiment_id}")
    for path in outcome.artifact_paths:
        typer.echo(f"artifact={path}")


@app.command("strategies")
def strategies() -> None:
    """List available strategies and their default parameters."""
    for entry in describe_catalog():
        defaults = ", ".join(f"{key}={value}" for key, value in entry["defaults"].items())
        typer.echo(f"{entry['name']} | {entry['label']} | {defaults}")


@app.command("list")
def list_command(
    db_path: Path = DB_PATH_OPTION,
    limit: int = LIMIT_OPTION,
    ticker: str | None = TICKER_FILTER_OPTION,
    strategy: str | None = STRATEGY_FILTER_OPTION,
) -> None:
    """List stored runs."""
    load_dotenv(Path(".env"))
    configure_logging()
    try:
        records = list_experiments(db_path=db_path, limit=limit, ticker=ticker, strategy=strategy)
    except Exception as exc:
        _handle_cli_exception(__name__, "List command", exc)

    if not records:
        typer.echo(f"No experiments found in {db_path}.")
        return

    typer.echo("experiment_id | timestamp | kind | ticker | strategy | sharpe | tags")
    for record in records:
        _print_experiment_row(record)


@app.command("show")
def show(
    experiment: str = EXPERIMENT_OPTION,
    db_path: Path = DB_PATH_OPTION,
) -> None:
    """Show one stored run."""
    load_dotenv(Path(".env"))
    configure_logging()
    try:
        record = get_experiment(experiment, db_path=db_path)
    except Exception as exc:
        _handle_cli_exception(__name__, "Show command", exc)

    typer.echo(f"experiment_id={record.experiment_id}")
    typer.echo(f"timestamp={record.timestamp.astimezone(UTC).isoformat()}")
    typer.echo(f"kind={record.kind}")
    typer.echo(f"ticker={record.ticker}")
    typer.echo(f"strategy={record.strategy}")
    typer.echo(f"parameters={json.dumps(record.parameters, sort_keys=True)}")
    typer.echo(f"tags={','.join(record.tags)}")
    typer.echo("metrics:")
    _print_metrics(record.metrics)
    typer.echo("artifact_paths:")
    for path in record.artifact_paths or ["-"]:
        typer.echo(f"- {path}")
    typer.echo("config_yaml:")
    typer.echo(record.config_yaml.rstrip())


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
