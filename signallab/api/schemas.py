"""Pydantic schemas for SignalLab API endpoints."""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

from signallab.api.jobs import JobStatus, JobType
from signallab.core.backtest.types import (
    BenchmarkMode,
    BenchmarkSettings,
    DrawdownPolicy,
    EngineSettings,
    ExitFill,
)


class HealthResponse(BaseModel):
    """Health endpoint response."""

    status: str = "ok"
    service: str = "signallab-api"


class ErrorResponse(BaseModel):
    """Error payload for typed API failures."""

    error_code: str
    message: str


class StrategyTemplateResponse(BaseModel):
    """One built-in strategy template."""

    id: str
    name: str
    description: str
    definition: dict[str, Any]


class EngineOptions(BaseModel):
    """Per-request engine overrides."""

    risk_free_rate: float = 0.02
    match_tolerance_hours: float = Field(default=24.0, gt=0)
    seed: int | None = None
    drawdown_policy: DrawdownPolicy = "advisory"
    exit_fill: ExitFill = "threshold"
    benchmark_mode: BenchmarkMode = "synthetic"
    benchmark_asset_id: str | None = None

    def to_engine_settings(self) -> EngineSettings:
        """Build engine settings from request options."""
        return EngineSettings(
            risk_free_rate=self.risk_free_rate,
            match_tolerance_hours=self.match_tolerance_hours,
            seed=self.seed,
            drawdown_policy=self.drawdown_policy,
            exit_fill=self.exit_fill,
            benchmark=BenchmarkSettings(
                mode=self.benchmark_mode,
                asset_id=self.benchmark_asset_id,
            ),
        )


class BacktestRequest(BaseModel):
    """Synchronous or queued backtest request payload."""

    strategy_template: str | None = None
    strategy: dict[str, Any] | None = None
    start_date: date
    end_date: date
    initial_capital: float = Field(default=100_000.0, gt=0)
    assets: list[str] | None = None
    data_dir: Path | None = None
    engine: EngineOptions = Field(default_factory=EngineOptions)

    @model_validator(mode="after")
    def validate_request(self) -> BacktestRequest:
        """Enforce exactly one strategy source and an ordered period."""
        if (self.strategy_template is None) == (self.strategy is None):
            raise ValueError("Provide exactly one of strategy_template or strategy.")
        if self.start_date > self.end_date:
            raise ValueError("start_date must be before or equal to end_date.")
        return self


class BacktestResponse(BaseModel):
    """Full backtest result payload."""

    strategy_id: str
    period: dict[str, Any]
    initial_capital: float
    final_portfolio_value: float
    performance_metrics: dict[str, float | None]
    risk_metrics: dict[str, float | None]
    trade_statistics: dict[str, float | None]
    portfolio_evolution: list[dict[str, Any]]
    trades: list[dict[str, Any]]
    benchmark_comparison: dict[str, float | None]


class RunRequest(BaseModel):
    """Config-driven run request payload."""

    config_path: Path
    strategy_template: str | None = None


class RunResponse(BaseModel):
    """Config-driven run response payload."""

    run_id: str
    strategy_id: str
    assets: list[str]
    metrics: dict[str, float | None]
    artifact_paths: list[str]
    manifest_path: str


class JobErrorResponse(BaseModel):
    """Background job error payload."""

    error_code: str
    message: str
    traceback: str | None = None


class JobRecordResponse(BaseModel):
    """Background job status payload."""

    job_id: str
    job_type: JobType
    status: JobStatus
    submitted_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    request: dict[str, Any]
    result: dict[str, Any] | None = None
    error: JobErrorResponse | None = None
