"""Service-layer workflows for CLI and API orchestration."""

from signallab.core.services.backtest_service import (
    RunOutcome,
    build_engine,
    run_backtest_from_config,
    run_backtest_with_config,
)

__all__ = [
    "RunOutcome",
    "build_engine",
    "run_backtest_from_config",
    "run_backtest_with_config",
]
