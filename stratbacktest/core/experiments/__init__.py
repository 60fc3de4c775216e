"""Run history persistence."""

from stratbacktest.core.experiments.store import ExperimentRecord, ExperimentStore

__all__ = ["ExperimentRecord", "ExperimentStore"]
