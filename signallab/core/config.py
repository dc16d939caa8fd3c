"""Configuration models and YAML loading."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from signallab.core.backtest.types import (
    BenchmarkMode,
    BenchmarkSettings,
    DrawdownPolicy,
    EngineSettings,
    ExitFill,
)
from signallab.core.research.strategy import (
    Strategy,
    get_strategy_template,
    load_strategy_file,
    parse_strategy,
)
from signallab.core.utils.errors import ConfigLoadError, SignalLabError


class DataConfig(BaseModel):
    """Historical data settings for a backtest run."""

    source: Literal["parquet"] = "parquet"
    data_dir: Path = Path("../data")
    start: date
    end: date
    assets: list[str] | None = None
    max_workers: int = 1

    @model_validator(mode="after")
    def validate_data(self) -> DataConfig:
        """Ensure date boundaries and the asset filter are valid."""
        if self.start > self.end:
            raise ValueError("data.start must be before or equal to data.end.")
        if self.max_workers < 1:
            raise ValueError("data.max_workers must be >= 1.")
        if self.assets is not None:
            normalized_assets = [asset.strip() for asset in self.assets if asset.strip()]
            if not normalized_assets:
                raise ValueError("data.assets must contain at least one non-empty asset id.")
            self.assets = normalized_assets
        return self


class StrategyConfig(BaseModel):
    """Strategy selection: a built-in template, a YAML file, or an inline definition."""

    template: str | None = None
    file: Path | None = None
    definition: dict[str, Any] | None = None

    @model_validator(mode="after")
    def validate_choice(self) -> StrategyConfig:
        """Ensure exactly one strategy source is given."""
        chosen = [
            name
            for name, value in (
                ("template", self.template),
                ("file", self.file),
                ("definition", self.definition),
            )
            if value is not None
        ]
        if len(chosen) != 1:
            raise ValueError(
                "strategy must set exactly one of 'template', 'file', or 'definition'."
            )
        if self.template is not None and not self.template.strip():
            raise ValueError("strategy.template must be non-empty.")
        return self

    @property
    def source_label(self) -> str:
        """Short description of where the strategy comes from."""
        if self.template is not None:
            return f"template:{self.template}"
        if self.file is not None:
            return f"file:{self.file}"
        return "inline"

    def resolve(self) -> Strategy:
        """Build the configured strategy."""
        if self.template is not None:
            return get_strategy_template(self.template)
        if self.file is not None:
            return load_strategy_file(self.file)
        return parse_strategy(self.definition)


class EngineConfig(BaseModel):
    """Simulation engine configuration."""

    initial_capital: float = 100_000.0
    risk_free_rate: float = 0.02
    trading_days_per_year: int = 252
    calendar_days_per_year: int = 365
    match_tolerance_hours: float = 24.0
    seed: int | None = None
    drawdown_policy: DrawdownPolicy = "advisory"
    exit_fill: ExitFill = "threshold"

    @model_validator(mode="after")
    def validate_engine(self) -> EngineConfig:
        """Validate simulation constraints."""
        if self.initial_capital <= 0:
            raise ValueError("engine.initial_capital must be > 0.")
        if self.trading_days_per_year <= 0 or self.calendar_days_per_year <= 0:
            raise ValueError("engine annualization day counts must be > 0.")
        if self.match_tolerance_hours <= 0:
            raise ValueError("engine.match_tolerance_hours must be > 0.")
        return self


class BenchmarkConfig(BaseModel):
    """Benchmark return source."""

    mode: BenchmarkMode = "synthetic"
    period_return_pct: float = 150.0
    daily_noise: float = 0.03
    asset_id: str | None = None

    @model_validator(mode="after")
    def validate_benchmark(self) -> BenchmarkConfig:
        """Ensure asset mode names an asset and synthetic parameters are sane."""
        if self.mode == "asset" and not (self.asset_id and self.asset_id.strip()):
            raise ValueError("benchmark.asset_id is required when benchmark.mode is 'asset'.")
        if self.period_return_pct <= -100:
            raise ValueError("benchmark.period_return_pct must be > -100.")
        if self.daily_noise < 0:
            raise ValueError("benchmark.daily_noise must be >= 0.")
        return self


class OutputConfig(BaseModel):
    """Output and artifact settings."""

    artifacts_dir: Path = Path("../artifacts")
    save_portfolio_plot: bool = True
    plot_filename: str = "portfolio_value.png"
    result_filename: str = "result.json"

    @model_validator(mode="after")
    def validate_output(self) -> OutputConfig:
        """Ensure output filenames are valid."""
        if not self.plot_filename.strip():
            raise ValueError("output.plot_filename must be non-empty.")
        if not self.result_filename.strip():
            raise ValueError("output.result_filename must be non-empty.")
        return self


class AppConfig(BaseModel):
    """Top-level application configuration."""

    data: DataConfig
    strategy: StrategyConfig
    engine: EngineConfig = Field(default_factory=EngineConfig)
    benchmark: BenchmarkConfig = Field(default_factory=BenchmarkConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    def to_engine_settings(self) -> EngineSettings:
        """Build immutable engine settings from the engine and benchmark sections."""
        return EngineSettings(
            risk_free_rate=self.engine.risk_free_rate,
            trading_days_per_year=self.engine.trading_days_per_year,
            calendar_days_per_year=self.engine.calendar_days_per_year,
            match_tolerance_hours=self.engine.match_tolerance_hours,
            seed=self.engine.seed,
            drawdown_policy=self.engine.drawdown_policy,
            exit_fill=self.engine.exit_fill,
            benchmark=BenchmarkSettings(
                mode=self.benchmark.mode,
                period_return_pct=self.benchmark.period_return_pct,
                daily_noise=self.benchmark.daily_noise,
                asset_id=self.benchmark.asset_id,
            ),
        )

    def resolve_strategy(self) -> Strategy:
        """
        Build the configured strategy.

        Raises:
            ConfigLoadError: If the strategy cannot be resolved.
        """
        try:
            return self.strategy.resolve()
        except SignalLabError as exc:
            raise ConfigLoadError(f"Strategy configuration failed: {exc}") from exc


def _resolve_config_path(path: Path) -> Path:
    """Resolve and validate a config file path."""
    resolved_path = path.expanduser().resolve()
    if not resolved_path.exists():
        raise ConfigLoadError(f"Config file not found: {resolved_path}")
    if not resolved_path.is_file():
        raise ConfigLoadError(f"Config path is not a file: {resolved_path}")
    return resolved_path


def _resolve_path(path: Path, base_dir: Path) -> Path:
    expanded = path.expanduser()
    if expanded.is_absolute():
        return expanded.resolve()
    return (base_dir / expanded).resolve()


def load_config(path: Path) -> AppConfig:
    """
    Load and validate application config from YAML.

    Relative paths are resolved from the YAML file parent directory.

    Args:
        path: YAML config file path.

    Returns:
        Validated application config.
    """
    config_path = _resolve_config_path(path)
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            raw_config: Any = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigLoadError(f"Failed to read config file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML in config file {config_path}: {exc}") from exc

    if not isinstance(raw_config, dict):
        raise ConfigLoadError("YAML root must be a mapping/object.")

    return _build_config(raw_config, config_path.parent)


def _build_config(raw_config: dict[str, Any], base_dir: Path) -> AppConfig:
    """Build and path-resolve config from raw data."""
    try:
        config = AppConfig.model_validate(raw_config)
    except Exception as exc:
        raise ConfigLoadError(f"Config validation failed: {exc}") from exc

    updated_data = config.data.model_copy(
        update={"data_dir": _resolve_path(config.data.data_dir, base_dir)}
    )
    updated_output = config.output.model_copy(
        update={"artifacts_dir": _resolve_path(config.output.artifacts_dir, base_dir)}
    )
    updated_strategy = config.strategy
    if config.strategy.file is not None:
        updated_strategy = config.strategy.model_copy(
            update={"file": _resolve_path(config.strategy.file, base_dir)}
        )
    return config.model_copy(
        update={"data": updated_data, "output": updated_output, "strategy": updated_strategy}
    )


def load_config_from_yaml_text(yaml_text: str, base_dir: Path | None = None) -> AppConfig:
    """
    Load and validate config from YAML text.

    Args:
        yaml_text: YAML string.
        base_dir: Base directory for relative paths.

    Returns:
        Validated application config.
    """
    try:
        raw_config: Any = yaml.safe_load(yaml_text) or {}
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML text: {exc}") from exc
    if not isinstance(raw_config, dict):
        raise ConfigLoadError("YAML root must be a mapping/object.")
    resolved_base_dir = (base_dir or Path.cwd()).expanduser().resolve()
    return _build_config(raw_config, resolved_base_dir)


def dump_config_to_yaml(config: AppConfig) -> str:
    """
    Serialize config to canonical YAML for reproducibility.

    Args:
        config: App config.

    Returns:
        YAML string.
    """
    payload = config.model_dump(mode="json", exclude_none=True)
    return yaml.safe_dump(payload, sort_keys=True, default_flow_style=False)
