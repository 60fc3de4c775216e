"""In-memory background job queue for API-triggered backtests and sweeps."""

from __future__ import annotations

import traceback
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime
from threading import Lock
from typing import Any, Literal

from stratbacktest.core.utils.errors import error_code_for_exception

JobTask = Callable[[], dict[str, Any]]
JobType = Literal["backtest", "sweep"]
JobStatus = Literal["queued", "running", "succeeded", "failed"]


@dataclass(frozen=True)
class JobRecord:
    """Snapshot of one background job."""

    job_id: str
    job_type: JobType
    status: JobStatus
    submitted_at: datetime
    started_at: datetime | None
    finished_at: datetime | None
    request: dict[str, Any]
    result: dict[str, Any] | None
    error_code: str | None
    error_message: str | None
    error_traceback: str | None


@dataclass
class _MutableJob:
    job_id: str
    job_type: JobType
    status: JobStatus
    submitted_at: datetime
    request: dict[str, Any]
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None
    error_traceback: str | None = None

    def to_record(self) -> JobRecord:
        return JobRecord(
            job_id=self.job_id,
            job_type=self.job_type,
            status=self.status,
            submitted_at=self.submitted_at,
            started_at=self.started_at,
            finished_at=self.finished_at,
            request=dict(self.request),
            result=None if self.result is None else dict(self.result),
            error_code=self.error_code,
            error_message=self.error_message,
            error_traceback=self.error_traceback,
        )


class InMemoryJobQueue:
    """Thread-safe in-memory job registry backed by a thread pool.

    Jobs share nothing but this registry; each task runs its own backtest.
    """

    def __init__(self, max_workers: int = 2) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(max_workers)), thread_name_prefix="stratbacktest-job"
        )
        self._lock = Lock()
        self._jobs: dict[str, _MutableJob] = {}
        self._counter = 0

    def submit(self, job_type: JobType, request: dict[str, Any], task: JobTask) -> JobRecord:
        """
        Queue ``task`` and return the queued snapshot.

        Args:
            job_type: ``backtest`` or ``sweep``.
            request: Request payload snapshot, echoed back on status reads.
            task: Work function returning a JSON-ready result payload.
        """
        with self._lock:
            self._counter += 1
            job = _MutableJob(
                job_id=f"job_{self._counter:06d}",
                job_type=job_type,
                status="queued",
                submitted_at=datetime.now(tz=UTC),
                request=dict(request),
            )
            self._jobs[job.job_id] = job
            snapshot = job.to_record()

        self._executor.submit(self._run_job, job.job_id, task)
        return snapshot

    def get(self, job_id: str) -> JobRecord | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return None if job is None else job.to_record()

    def list(self, limit: int = 100) -> list[JobRecord]:
        """List jobs newest first."""
        safe_limit = max(1, int(limit))
        with self._lock:
            ordered = sorted(
                self._jobs.values(),
                key=lambda job: (job.submitted_at, job.job_id),
                reverse=True,
            )
            return [job.to_record() for job in ordered[:safe_limit]]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run_job(self, job_id: str, task: JobTask) -> None:
        self._update(job_id, status="running", started_at=datetime.now(tz=UTC))
        try:
            result = task()
        except Exception as exc:
            self._update(
                job_id,
                status="failed",
                finished_at=datetime.now(tz=UTC),
                result=None,
                error_code=error_code_for_exception(exc),
                error_message=str(exc),
                error_traceback="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            )
            return
        self._update(job_id, status="succeeded", finished_at=datetime.now(tz=UTC), result=dict(result))

    def _update(self, job_id: str, **changes: Any) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            for name, value in changes.items():
                setattr(job, name, value)
