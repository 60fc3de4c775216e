"""Pydantic schemas for stratbacktest API endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from stratbacktest.core.services import BacktestRequest


class _CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    """Health endpoint response."""

    status: str = "ok"
    service: str = "stratbacktest-api"


class ErrorResponse(BaseModel):
    """Error payload for typed API failures."""

    error_code: str
    message: str
    error_type: str | None = None


class StrategyInfoResponse(BaseModel):
    """One strategy catalog entry."""

    name: str
    label: str
    description: str
    defaults: dict[str, float]


class DateRange(_CamelModel):
    """Inclusive date range; ordering is checked by the service layer."""

    start: date
    end: date


class BacktestRequestBody(_CamelModel):
    """Backtest request as sent by the UI."""

    ticker: str
    strategy: str
    parameters: dict[str, float] = Field(default_factory=dict)
    initial_capital: float = 100_000.0
    date_range: DateRange | None = None

    def to_request(self) -> BacktestRequest:
        return BacktestRequest(
            ticker=self.ticker,
            strategy=self.strategy,
            parameters=dict(self.parameters),
            initial_capital=self.initial_capital,
            start=self.date_range.start if self.date_range is not None else None,
            end=self.date_range.end if self.date_range is not None else None,
        )


class SweepRequestBody(BacktestRequestBody):
    """Backtest request plus a parameter grid."""

    grid: dict[str, list[float]] = Field(default_factory=dict)
    max_workers: int = Field(default=4, ge=1, le=32)
    rank_by: str = "sharpe_ratio"


class ExperimentSummaryResponse(BaseModel):
    """Summary view of one stored run."""

    experiment_id: str
    timestamp: datetime
    kind: str
    ticker: str
    strategy: str
    parameters: dict[str, Any]
    total_return: float
    sharpe_ratio: float
    tags: list[str]


class ExperimentDetailResponse(BaseModel):
    """Full stored run payload."""

    experiment_id: str
    timestamp: datetime
    kind: str
    ticker: str
    strategy: str
    parameters: dict[str, Any]
    config_yaml: str
    metrics: dict[str, float]
    artifact_paths: list[str]
    tags: list[str]


class JobErrorResponse(BaseModel):
    """Background job error payload."""

    error_code: str
    message: str
    traceback: str | None = None


class JobRecordResponse(BaseModel):
    """Background job status payload."""

    job_id: str
    job_type: Literal["backtest", "sweep"]
    status: Literal["queued", "running", "succeeded", "failed"]
    submitted_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    request: dict[str, Any]
    result: dict[str, Any] | None = None
    error: JobErrorResponse | None = None
