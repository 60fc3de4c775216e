"""FastAPI application for stratbacktest."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from stratbacktest.api.jobs import InMemoryJobQueue, JobRecord
from stratbacktest.api.schemas import (
    BacktestRequestBody,
    ErrorResponse,
    ExperimentDetailResponse,
    ExperimentSummaryResponse,
    HealthResponse,
    JobErrorResponse,
    JobRecordResponse,
    StrategyInfoResponse,
    SweepRequestBody,
)
from stratbacktest.core.backtest.types import BacktestFailure
from stratbacktest.core.data.loader import PriceLoader, build_loader
from stratbacktest.core.services import (
    DEFAULT_DB_PATH,
    execute_backtest,
    get_experiment,
    list_experiments,
    run_backtest_request,
    run_sweep_request,
)
from stratbacktest.core.strategies import describe_catalog
from stratbacktest.core.utils.env import env_int, env_str, load_dotenv
from stratbacktest.core.utils.errors import (
    ConfigurationError,
    DataSourceError,
    ExperimentNotFoundError,
    InsufficientDataError,
    StratBacktestError,
)
from stratbacktest.core.utils.logging import configure_logging, get_logger

LoaderFactory = Callable[[], PriceLoader]
LIMIT_QUERY = Query(default=50, ge=1, le=500)
_LOGGER_NAME = "stratbacktest.api.app"
_HTTP_STATUS_BY_ERROR_CODE: dict[str, int] = {
    ConfigurationError.error_code: 400,
    InsufficientDataError.error_code: 422,
    DataSourceError.error_code: 502,
}


def _http_status_for_error(exc: StratBacktestError) -> int:
    """Map typed domain exceptions to HTTP status codes."""
    if isinstance(exc, ExperimentNotFoundError):
        return 404
    return _HTTP_STATUS_BY_ERROR_CODE.get(exc.error_code, 500)


def _failure_response(failure: BacktestFailure) -> JSONResponse:
    payload = ErrorResponse(
        error_code=failure.error_code,
        message=failure.message,
        error_type=failure.error_type,
    )
    return JSONResponse(
        status_code=_HTTP_STATUS_BY_ERROR_CODE.get(failure.error_code, 500),
        content=payload.model_dump(),
    )


def _default_loader_factory() -> PriceLoader:
    """Build a loader from ``STRATBACKTEST_DATA_PROVIDER``/``_CACHE_DIR``/``_CSV_DIR``."""
    csv_dir = env_str("CSV_DIR", "")
    return build_loader(
        env_str("DATA_PROVIDER", "eodhd"),
        cache_dir=Path(env_str("CACHE_DIR", "data/cache")),
        csv_dir=Path(csv_dir) if csv_dir else None,
    )


def _job_response(record: JobRecord) -> JobRecordResponse:
    error = None
    if record.error_code is not None:
        error = JobErrorResponse(
            error_code=record.error_code,
            message=record.error_message or "",
            traceback=record.error_traceback,
        )
    return JobRecordResponse(
        job_id=record.job_id,
        job_type=record.job_type,
        status=record.status,
        submitted_at=record.submitted_at,
        started_at=record.started_at,
        finished_at=record.finished_at,
        request=dict(record.request),
        result=None if record.result is None else dict(record.result),
        error=error,
    )


def create_app(
    loader_factory: LoaderFactory | None = None,
    db_path: Path | None = None,
    job_workers: int | None = None,
) -> FastAPI:
    """
    Build the stratbacktest FastAPI app.

    Args:
        loader_factory: Builds the price loader per request; defaults to env settings.
        db_path: Experiment database; defaults to ``STRATBACKTEST_DB_PATH``.
        job_workers: Background job threads; defaults to ``STRATBACKTEST_JOB_WORKERS``.

    Returns:
        Configured FastAPI instance.
    """
    load_dotenv(Path(".env"))
    configure_logging()

    resolved_loader_factory = loader_factory or _default_loader_factory
    resolved_db_path = db_path or Path(env_str("DB_PATH", str(DEFAULT_DB_PATH)))
    jobs = InMemoryJobQueue(
        max_workers=job_workers if job_workers is not None else env_int("JOB_WORKERS", 2, minimum=1)
    )

    app = FastAPI(
        title="StratBacktest API",
        version="0.1.0",
        description="Single-asset strategy backtesting over historical prices.",
    )
    app.state.jobs = jobs
    get_logger(_LOGGER_NAME).info("StratBacktest API startup complete.")

    @app.exception_handler(StratBacktestError)
    async def _handle_domain_error(_: Any, exc: StratBacktestError) -> JSONResponse:
        get_logger(_LOGGER_NAME).error("StratBacktest API error: %s", exc)
        payload = ErrorResponse(
            error_code=exc.error_code,
            message=str(exc),
            error_type=exc.__class__.__name__,
        )
        return JSONResponse(status_code=_http_status_for_error(exc), content=payload.model_dump())

    @app.exception_handler(Exception)
    async def _handle_unexpected_error(_: Any, exc: Exception) -> JSONResponse:
        get_logger(_LOGGER_NAME).exception("Unhandled API error: %s", exc)
        payload = ErrorResponse(error_code="internal_error", message="Internal server error.")
        return JSONResponse(status_code=500, content=payload.model_dump())

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse()

    @app.get("/strategies", response_model=list[StrategyInfoResponse])
    async def strategies() -> list[StrategyInfoResponse]:
        """List the strategy catalog with default parameters."""
        return [StrategyInfoResponse(**entry) for entry in describe_catalog()]

    @app.post("/backtest")
    def backtest(body: BacktestRequestBody) -> JSONResponse:
        """Run one backtest and return the camelCase result payload."""
        outcome = execute_backtest(body.to_request(), resolved_loader_factory())
        if isinstance(outcome, BacktestFailure):
            return _failure_response(outcome)
        return JSONResponse(status_code=200, content=outcome.to_dict())

    @app.post("/sweeps")
    def sweeps(body: SweepRequestBody) -> dict[str, Any]:
        """Run a parameter sweep synchronously."""
        sweep = run_sweep_request(
            body.to_request(),
            grid=dict(body.grid),
            loader=resolved_loader_factory(),
            max_workers=body.max_workers,
        )
        return sweep.to_dict(body.rank_by)

    @app.post("/jobs/backtest", response_model=JobRecordResponse, status_code=202)
    async def submit_backtest_job(body: BacktestRequestBody) -> JobRecordResponse:
        """Queue a backtest; poll ``/jobs/{job_id}`` for the result."""
        request = body.to_request()

        def task() -> dict[str, Any]:
            return run_backtest_request(request, resolved_loader_factory()).to_dict()

        return _job_response(jobs.submit("backtest", body.model_dump(mode="json", by_alias=True), task))

    @app.post("/jobs/sweep", response_model=JobRecordResponse, status_code=202)
    async def submit_sweep_job(body: SweepRequestBody) -> JobRecordResponse:
        """Queue a parameter sweep."""
        request = body.to_request()

        def task() -> dict[str, Any]:
            sweep = run_sweep_request(
                request,
                grid=dict(body.grid),
                loader=resolved_loader_factory(),
                max_workers=body.max_workers,
            )
            return sweep.to_dict(body.rank_by)

        return _job_response(jobs.submit("sweep", body.model_dump(mode="json", by_alias=True), task))

    @app.get("/jobs", response_model=list[JobRecordResponse])
    async def list_jobs(limit: int = LIMIT_QUERY) -> list[JobRecordResponse]:
        return [_job_response(record) for record in jobs.list(limit=limit)]

    @app.get("/jobs/{job_id}", response_model=JobRecordResponse)
    async def job_detail(job_id: str) -> JobRecordResponse:
        record = jobs.get(job_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found.")
        return _job_response(record)

    @app.get("/experiments", response_model=list[ExperimentSummaryResponse])
    def experiments(
        limit: int = LIMIT_QUERY,
        ticker: str | None = None,
        strategy: str | None = None,
    ) -> list[ExperimentSummaryResponse]:
        """List stored runs newest first."""
        records = list_experiments(db_path=resolved_db_path, limit=limit, ticker=ticker, strategy=strategy)
        return [
            ExperimentSummaryResponse(
                experiment_id=record.experiment_id,
                timestamp=record.timestamp,
                kind=record.kind,
                ticker=record.ticker,
                strategy=record.strategy,
                parameters=dict(record.parameters),
                total_return=float(record.metrics.get("total_return", 0.0)),
                sharpe_ratio=float(record.metrics.get("sharpe_ratio", 0.0)),
                tags=list(record.tags),
            )
            for record in records
        ]

    @app.get("/experiments/{experiment_id}", response_model=ExperimentDetailResponse)
    def experiment_detail(experiment_id: str) -> ExperimentDetailResponse:
        record = get_experiment(experiment_id=experiment_id, db_path=resolved_db_path)
        return ExperimentDetailResponse(
            experiment_id=record.experiment_id,
            timestamp=record.timestamp,
            kind=record.kind,
            ticker=record.ticker,
            strategy=record.strategy,
            parameters=dict(record.parameters),
            config_yaml=record.config_yaml,
            metrics=dict(record.metrics),
            artifact_paths=list(record.artifact_paths),
            tags=list(record.tags),
        )

    return app
