"""FastAPI application for SignalLab backtests."""

from __future__ import annotations

import asyncio
import math
import os
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from signallab.api.jobs import InMemoryJobQueue, JobRecord
from signallab.api.schemas import (
    BacktestRequest,
    BacktestResponse,
    ErrorResponse,
    HealthResponse,
    JobErrorResponse,
    JobRecordResponse,
    RunRequest,
    RunResponse,
    StrategyTemplateResponse,
)
from signallab.core.backtest.engine import BacktestEngine
from signallab.core.research.strategy import (
    Strategy,
    get_strategy_template,
    get_strategy_templates,
    parse_strategy,
)
from signallab.core.services import RunOutcome, build_engine, run_backtest_from_config
from signallab.core.utils.errors import (
    ArtifactError,
    BacktestError,
    ConfigLoadError,
    DataUnavailableError,
    DataValidationError,
    InsufficientDataError,
    SignalLabError,
    StrategyError,
)
from signallab.core.utils.logging import configure_logging, get_logger

DEFAULT_DATA_DIR = Path("data")
LIMIT_QUERY = Query(default=100, ge=1, le=500)
_LOGGER_NAME = "signallab.api.app"


def _http_status_for_signallab_error(exc: SignalLabError) -> int:
    """Map typed domain exceptions to HTTP status codes."""
    if isinstance(exc, (ConfigLoadError, StrategyError, BacktestError)):
        return 400
    if isinstance(exc, DataUnavailableError):
        return 404
    if isinstance(exc, (DataValidationError, InsufficientDataError)):
        return 422
    if isinstance(exc, ArtifactError):
        return 500
    return 500


def _finite_or_none(metrics: dict[str, float]) -> dict[str, float | None]:
    return {key: value if math.isfinite(value) else None for key, value in metrics.items()}


def _resolve_request_strategy(request: BacktestRequest) -> Strategy:
    if request.strategy_template is not None:
        return get_strategy_template(request.strategy_template)
    return parse_strategy(request.strategy)


def _run_response(outcome: RunOutcome) -> RunResponse:
    return RunResponse(
        run_id=outcome.run_id,
        strategy_id=outcome.strategy_id,
        assets=list(outcome.assets),
        metrics=_finite_or_none(outcome.metrics),
        artifact_paths=list(outcome.artifact_paths),
        manifest_path=str(outcome.manifest_path),
    )


def _job_response(record: JobRecord) -> JobRecordResponse:
    error = None
    if record.status == "failed":
        error = JobErrorResponse(
            error_code=record.error_code or "internal_error",
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
        result=record.result,
        error=error,
    )


def create_app(data_dir: Path | None = None, job_workers: int = 2) -> FastAPI:
    """
    Build and return the SignalLab FastAPI app.

    Args:
        data_dir: Default parquet data directory; falls back to
            ``SIGNALLAB_DATA_DIR`` and then ``./data``.
        job_workers: Background job worker threads.

    Returns:
        Configured FastAPI instance.
    """
    configure_logging()
    default_data_dir = data_dir or Path(os.getenv("SIGNALLAB_DATA_DIR", str(DEFAULT_DATA_DIR)))
    job_queue = InMemoryJobQueue(max_workers=job_workers)

    app = FastAPI(
        title="SignalLab API",
        version="0.1.0",
        description="Backtest prediction-driven trading strategies over historical data.",
    )
    app.state.job_queue = job_queue
    app.state.data_dir = default_data_dir
    logger = get_logger(_LOGGER_NAME)
    logger.info("SignalLab API startup complete (data_dir=%s).", default_data_dir)

    @app.exception_handler(SignalLabError)
    async def _handle_signallab_error(_: Any, exc: SignalLabError) -> JSONResponse:
        """Render typed domain errors as JSON responses."""
        get_logger(_LOGGER_NAME).error("SignalLab API error: %s", exc)
        payload = ErrorResponse(error_code=exc.error_code, message=str(exc))
        return JSONResponse(
            status_code=_http_status_for_signallab_error(exc),
            content=payload.model_dump(),
        )

    @app.exception_handler(Exception)
    async def _handle_unexpected_error(_: Any, exc: Exception) -> JSONResponse:
        """Render unknown errors as deterministic API payloads."""
        get_logger(_LOGGER_NAME).exception("Unhandled API error: %s", exc)
        payload = ErrorResponse(error_code="internal_error", message="Internal server error.")
        return JSONResponse(status_code=500, content=payload.model_dump())

    def _request_engine(request: BacktestRequest) -> BacktestEngine:
        return build_engine(
            request.data_dir or default_data_dir,
            settings=request.engine.to_engine_settings(),
            assets=request.assets,
        )

    def _execute_backtest(request: BacktestRequest) -> dict[str, Any]:
        strategy = _resolve_request_strategy(request)
        engine = _request_engine(request)
        result = engine.run_backtest(
            strategy,
            request.start_date,
            request.end_date,
            request.initial_capital,
        )
        return result.to_dict()

    def _execute_run(request: RunRequest) -> dict[str, Any]:
        override = None
        if request.strategy_template is not None:
            override = get_strategy_template(request.strategy_template)
        outcome = run_backtest_from_config(request.config_path, strategy_override=override)
        return _run_response(outcome).model_dump(mode="json")

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Return API health metadata."""
        return HealthResponse()

    @app.get("/strategies/templates", response_model=list[StrategyTemplateResponse])
    async def strategy_templates() -> list[StrategyTemplateResponse]:
        """List built-in strategy templates."""
        return [
            StrategyTemplateResponse(
                id=template.id,
                name=template.name,
                description=template.description,
                definition=template.model_dump(mode="json"),
            )
            for template in get_strategy_templates()
        ]

    @app.post("/backtests", response_model=BacktestResponse)
    async def backtests(request: BacktestRequest) -> BacktestResponse:
        """Run one backtest synchronously and return the full result."""
        strategy = _resolve_request_strategy(request)
        engine = _request_engine(request)
        result = await engine.run_backtest_async(
            strategy,
            request.start_date,
            request.end_date,
            request.initial_capital,
        )
        return BacktestResponse.model_validate(result.to_dict())

    @app.post("/runs", response_model=RunResponse)
    async def runs(request: RunRequest) -> RunResponse:
        """Run a config-driven backtest and write its artifacts."""
        payload = await asyncio.to_thread(_execute_run, request)
        return RunResponse.model_validate(payload)

    @app.post("/jobs/backtests", response_model=JobRecordResponse, status_code=202)
    async def submit_backtest_job(request: BacktestRequest) -> JobRecordResponse:
        """Queue a backtest for background execution."""
        record = job_queue.submit(
            "backtest",
            request.model_dump(mode="json"),
            lambda: _execute_backtest(request),
        )
        return _job_response(record)

    @app.post("/jobs/runs", response_model=JobRecordResponse, status_code=202)
    async def submit_run_job(request: RunRequest) -> JobRecordResponse:
        """Queue a config-driven run for background execution."""
        record = job_queue.submit(
            "run",
            request.model_dump(mode="json"),
            lambda: _execute_run(request),
        )
        return _job_response(record)

    @app.get("/jobs", response_model=list[JobRecordResponse])
    async def jobs(limit: int = LIMIT_QUERY) -> list[JobRecordResponse]:
        """List background jobs, newest first."""
        return [_job_response(record) for record in job_queue.list(limit=limit)]

    @app.get("/jobs/{job_id}", response_model=JobRecordResponse)
    async def job_detail(job_id: str) -> JobRecordResponse:
        """Return one background job."""
        record = job_queue.get(job_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found.")
        return _job_response(record)

    return app
