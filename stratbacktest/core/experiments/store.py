"""SQLite-backed run history."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from stratbacktest.core.utils.errors import ExperimentNotFoundError, ExperimentStoreError


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""


class ExperimentORM(Base):
    """One stored backtest or sweep run."""

    __tablename__ = "experiments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False, default="backtest")
    ticker: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    strategy: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    parameters_json: Mapped[str] = mapped_column(Text, nullable=False)
    config_yaml: Mapped[str] = mapped_column(Text, nullable=False)
    metrics_json: Mapped[str] = mapped_column(Text, nullable=False)
    artifact_paths_json: Mapped[str] = mapped_column(Text, nullable=False)
    tags_json: Mapped[str] = mapped_column(Text, nullable=False)


@dataclass(frozen=True)
class ExperimentRecord:
    """Read-model for stored runs."""

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

    def to_dict(self) -> dict[str, Any]:
        return {
            "experimentId": self.experiment_id,
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind,
            "ticker": self.ticker,
            "strategy": self.strategy,
            "parameters": dict(self.parameters),
            "metrics": dict(self.metrics),
            "artifactPaths": list(self.artifact_paths),
            "tags": list(self.tags),
        }


def _normalize_tags(tags: list[str] | None) -> list[str]:
    if not tags:
        return []
    return sorted({tag.strip() for tag in tags if tag.strip()})


def _to_record(row: ExperimentORM) -> ExperimentRecord:
    # SQLite drops tzinfo on round-trip.
    row_timestamp = row.timestamp
    if row_timestamp.tzinfo is None:
        row_timestamp = row_timestamp.replace(tzinfo=UTC)

    return ExperimentRecord(
        experiment_id=row.experiment_id,
        timestamp=row_timestamp,
        kind=row.kind,
        ticker=row.ticker,
        strategy=row.strategy,
        parameters=dict(json.loads(row.parameters_json)),
        config_yaml=row.config_yaml,
        metrics=dict(json.loads(row.metrics_json)),
        artifact_paths=list(json.loads(row.artifact_paths_json)),
        tags=list(json.loads(row.tags_json)),
    )


class ExperimentStore:
    """Store and query runs in a local SQLite database."""

    def __init__(self, db_path: Path) -> None:
        resolved_path = db_path.expanduser().resolve()
        resolved_path.parent.mkdir(parents=True, exist_ok=True)

        self.db_path = resolved_path
        self._engine = create_engine(f"sqlite+pysqlite:///{self.db_path}", future=True)
        self._session_factory = sessionmaker(bind=self._engine, class_=Session, expire_on_commit=False)
        try:
            Base.metadata.create_all(self._engine)
        except Exception as exc:
            raise ExperimentStoreError(
                f"Failed to initialize experiment store at {self.db_path}: {exc}"
            ) from exc

    def _session(self) -> Session:
        return self._session_factory()

    def next_experiment_id(self, prefix: str = "exp") -> str:
        """Generate a timestamped id, suffixed when it collides with a stored run."""
        base = f"{prefix}_{datetime.now(tz=UTC).strftime('%Y%m%dT%H%M%S%fZ')}"
        candidate = base
        suffix = 1
        while self.get_experiment(candidate) is not None:
            candidate = f"{base}_{suffix:02d}"
            suffix += 1
        return candidate

    def create_experiment(
        self,
        experiment_id: str,
        ticker: str,
        strategy: str,
        parameters: dict[str, Any],
        config_yaml: str,
        metrics: dict[str, float],
        artifact_paths: list[str],
        tags: list[str] | None = None,
        kind: str = "backtest",
    ) -> ExperimentRecord:
        """
        Persist a new run record.

        Args:
            experiment_id: Unique run id.
            ticker: Simulated ticker.
            strategy: Strategy catalog tag.
            parameters: Effective strategy parameters.
            config_yaml: Canonical run config, used for reruns.
            metrics: Flat metric mapping.
            artifact_paths: Artifact file paths.
            tags: Optional tags.
            kind: ``backtest`` or ``sweep``.

        Returns:
            Persisted record.

        Raises:
            ExperimentStoreError: If the insert fails, e.g. on a duplicate id.
        """
        row = ExperimentORM(
            experiment_id=experiment_id,
            timestamp=datetime.now(tz=UTC),
            kind=kind,
            ticker=ticker,
            strategy=strategy,
            parameters_json=json.dumps(parameters, sort_keys=True),
            config_yaml=config_yaml,
            metrics_json=json.dumps(metrics, sort_keys=True),
            artifact_paths_json=json.dumps(sorted({str(path) for path in artifact_paths})),
            tags_json=json.dumps(_normalize_tags(tags)),
        )

        with self._session() as session:
            try:
                session.add(row)
                session.commit()
                session.refresh(row)
                return _to_record(row)
            except Exception as exc:
                session.rollback()
                raise ExperimentStoreError(
                    f"Failed to create experiment '{experiment_id}' in {self.db_path}: {exc}"
                ) from exc

    def get_experiment(self, experiment_id: str) -> ExperimentRecord | None:
        with self._session() as session:
            try:
                stmt = select(ExperimentORM).where(ExperimentORM.experiment_id == experiment_id)
                row = session.execute(stmt).scalar_one_or_none()
                return _to_record(row) if row is not None else None
            except Exception as exc:
                raise ExperimentStoreError(
                    f"Failed to load experiment '{experiment_id}' from {self.db_path}: {exc}"
                ) from exc

    def list_experiments(
        self,
        limit: int = 100,
        ticker: str | None = None,
        strategy: str | None = None,
    ) -> list[ExperimentRecord]:
        """List runs newest first, optionally filtered by ticker and/or strategy."""
        safe_limit = max(1, limit)
        stmt = select(ExperimentORM)
        if ticker:
            stmt = stmt.where(ExperimentORM.ticker == ticker.strip().upper())
        if strategy:
            stmt = stmt.where(ExperimentORM.strategy == strategy.strip().lower())
        stmt = stmt.order_by(ExperimentORM.timestamp.desc(), ExperimentORM.id.desc()).limit(safe_limit)
        with self._session() as session:
            try:
                rows = session.execute(stmt).scalars().all()
                return [_to_record(row) for row in rows]
            except Exception as exc:
                raise ExperimentStoreError(
                    f"Failed to list experiments from {self.db_path}: {exc}"
                ) from exc

    def append_artifacts(self, experiment_id: str, artifact_paths: list[str]) -> ExperimentRecord:
        """
        Merge artifact paths into an existing run.

        Raises:
            ExperimentStoreError: If the run does not exist or the update fails.
        """
        with self._session() as session:
            try:
                stmt = select(ExperimentORM).where(ExperimentORM.experiment_id == experiment_id)
                row = session.execute(stmt).scalar_one_or_none()
                if row is None:
                    raise ExperimentNotFoundError(f"Experiment '{experiment_id}' not found.")

                existing = list(json.loads(row.artifact_paths_json))
                merged = sorted({*existing, *(str(path) for path in artifact_paths)})
                row.artifact_paths_json = json.dumps(merged)
                session.commit()
                session.refresh(row)
                return _to_record(row)
            except ExperimentStoreError:
                session.rollback()
                raise
            except Exception as exc:
                session.rollback()
                raise ExperimentStoreError(
                    f"Failed to append artifacts for experiment '{experiment_id}': {exc}"
                ) from exc
