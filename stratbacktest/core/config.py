"""Configuration models and YAML loading."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from stratbacktest.core.backtest.types import SimulationSettings
from stratbacktest.core.utils.errors import ConfigurationError


class DataConfig(BaseModel):
    """Price data settings for a run."""

    ticker: str
    provider: Literal["eodhd", "csv"] = "eodhd"
    start: date
    end: date
    cache_dir: Path = Path("../data/cache")
    csv_dir: Path | None = None

    @model_validator(mode="after")
    def validate_data(self) -> DataConfig:
        """Ensure the ticker is present and the date range is ordered."""
        ticker = self.ticker.strip().upper()
        if not ticker:
            raise ValueError("data.ticker must be non-empty.")
        self.ticker = ticker
        if self.start > self.end:
            raise ValueError("data.start must be before or equal to data.end.")
        if self.provider == "csv" and self.csv_dir is None:
            raise ValueError("data.csv_dir is required when data.provider is 'csv'.")
        return self


class StrategyConfig(BaseModel):
    """Strategy selection; the name is checked against the catalog at run time."""

    name: str = "dual_ma"
    params: dict[str, float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_name(self) -> StrategyConfig:
        """Normalize the strategy name."""
        if not self.name.strip():
            raise ValueError("strategy.name must be non-empty.")
        self.name = self.name.strip().lower()
        return self


class SimulationConfig(BaseModel):
    """Simulation engine configuration."""

    initial_capital: float = 100_000.0
    position_fraction: float = 1.0
    liquidate_at_end: bool = True
    commission_bps: float = 0.0
    slippage_bps: float = 0.0
    whole_shares: bool = False
    bars_per_year: int = 252

    @model_validator(mode="after")
    def validate_simulation(self) -> SimulationConfig:
        """Validate execution constraints."""
        if self.initial_capital <= 0:
            raise ValueError("simulation.initial_capital must be > 0.")
        if not 0.0 < self.position_fraction <= 1.0:
            raise ValueError("simulation.position_fraction must be in (0, 1].")
        if self.commission_bps < 0:
            raise ValueError("simulation.commission_bps must be >= 0.")
        if self.slippage_bps < 0:
            raise ValueError("simulation.slippage_bps must be >= 0.")
        if self.bars_per_year <= 0:
            raise ValueError("simulation.bars_per_year must be > 0.")
        return self

    def to_settings(self) -> SimulationSettings:
        return SimulationSettings(**self.model_dump())


class OutputConfig(BaseModel):
    """Output and artifact settings."""

    artifacts_dir: Path = Path("../artifacts")
    save_equity_plot: bool = True
    equity_plot_filename: str = "equity_curve.png"

    @model_validator(mode="after")
    def validate_output(self) -> OutputConfig:
        """Ensure output filenames are valid."""
        if not self.equity_plot_filename.strip():
            raise ValueError("output.equity_plot_filename must be non-empty.")
        return self


class SweepConfig(BaseModel):
    """Parameter sweep configuration."""

    parameter_grid: dict[str, list[float]] = Field(default_factory=dict)
    max_workers: int = 4

    @model_validator(mode="after")
    def validate_sweep(self) -> SweepConfig:
        """Validate grid shape and worker count."""
        if self.max_workers < 1:
            raise ValueError("sweep.max_workers must be >= 1.")
        for key, values in self.parameter_grid.items():
            if not key.strip():
                raise ValueError("sweep.parameter_grid keys must be non-empty.")
            if not values:
                raise ValueError(f"sweep.parameter_grid['{key}'] must be a non-empty list of values.")
        return self


class ExperimentsConfig(BaseModel):
    """Experiment tracking configuration."""

    db_path: Path = Path("../data/experiments.sqlite")
    tags: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_experiments(self) -> ExperimentsConfig:
        """Normalize tags."""
        self.tags = sorted({tag.strip() for tag in self.tags if tag.strip()})
        return self


class AppConfig(BaseModel):
    """Top-level application configuration."""

    data: DataConfig
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    sweep: SweepConfig = Field(default_factory=SweepConfig)
    experiments: ExperimentsConfig = Field(default_factory=ExperimentsConfig)


def _resolve_config_path(path: Path) -> Path:
    resolved_path = path.expanduser().resolve()
    if not resolved_path.exists():
        raise ConfigurationError(f"Config file not found: {resolved_path}")
    if not resolved_path.is_file():
        raise ConfigurationError(f"Config path is not a file: {resolved_path}")
    return resolved_path


def _resolve_relative(path: Path, base_dir: Path) -> Path:
    expanded = path.expanduser()
    return expanded.resolve() if expanded.is_absolute() else (base_dir / expanded).resolve()


def _build_config(raw_config: dict[str, Any], base_dir: Path) -> AppConfig:
    """Validate raw data and resolve relative paths against ``base_dir``."""
    try:
        config = AppConfig.model_validate(raw_config)
    except Exception as exc:
        raise ConfigurationError(f"Config validation failed: {exc}") from exc

    data_update: dict[str, Any] = {"cache_dir": _resolve_relative(config.data.cache_dir, base_dir)}
    if config.data.csv_dir is not None:
        data_update["csv_dir"] = _resolve_relative(config.data.csv_dir, base_dir)
    updated_data = config.data.model_copy(update=data_update)
    updated_output = config.output.model_copy(
        update={"artifacts_dir": _resolve_relative(config.output.artifacts_dir, base_dir)}
    )
    updated_experiments = config.experiments.model_copy(
        update={"db_path": _resolve_relative(config.experiments.db_path, base_dir)}
    )
    return config.model_copy(
        update={"data": updated_data, "output": updated_output, "experiments": updated_experiments}
    )


def load_config(path: Path) -> AppConfig:
    """
    Load and validate application config from YAML.

    Relative paths are resolved from the YAML file parent directory.

    Args:
        path: YAML config file path.

    Returns:
        Validated application config.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid.
    """
    config_path = _resolve_config_path(path)
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            raw_config: Any = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigurationError(f"Failed to read config file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in config file {config_path}: {exc}") from exc

    if not isinstance(raw_config, dict):
        raise ConfigurationError("YAML root must be a mapping/object.")
    return _build_config(raw_config, config_path.parent)


def load_config_from_yaml_text(yaml_text: str, base_dir: Path | None = None) -> AppConfig:
    """Load and validate config from YAML text, resolving paths from ``base_dir``."""
    try:
        raw_config: Any = yaml.safe_load(yaml_text) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML text: {exc}") from exc
    if not isinstance(raw_config, dict):
        raise ConfigurationError("YAML root must be a mapping/object.")
    return _build_config(raw_config, (base_dir or Path.cwd()).expanduser().resolve())


def dump_config_to_yaml(config: AppConfig) -> str:
    """Serialize config to canonical YAML for reproducible reruns."""
    payload = config.model_dump(mode="json")
    return yaml.safe_dump(payload, sort_keys=True, default_flow_style=False)
