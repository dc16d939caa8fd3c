"""Domain-specific error taxonomy for SignalLab."""

from __future__ import annotations


class SignalLabError(Exception):
    """Base SignalLab error with CLI exit-code metadata."""

    exit_code: int = 1
    error_code: str = "signallab_error"


class ConfigLoadError(SignalLabError, ValueError):
    """Configuration loading/validation error."""

    exit_code = 2
    error_code = "config_error"


class DataUnavailableError(SignalLabError, LookupError):
    """No historical data could be assembled for the requested period."""

    exit_code = 3
    error_code = "data_unavailable"


class DataValidationError(SignalLabError, ValueError):
    """Data schema/integrity validation error."""

    exit_code = 4
    error_code = "data_validation_error"


class InsufficientDataError(SignalLabError, LookupError):
    """
    One asset lacks records for part of a run.

    Raised by data sources for a single asset. The loader skips that asset
    instead of aborting the run.
    """

    exit_code = 5
    error_code = "insufficient_data"


class StrategyError(SignalLabError, ValueError):
    """Strategy definition loading/validation error."""

    exit_code = 6
    error_code = "strategy_error"


class BacktestError(SignalLabError, ValueError):
    """Backtest execution error."""

    exit_code = 7
    error_code = "backtest_error"


class ArtifactError(SignalLabError, RuntimeError):
    """Artifact write/read error."""

    exit_code = 10
    error_code = "artifact_error"


def exit_code_for_exception(exc: Exception) -> int:
    """
    Resolve process exit code for an exception.

    Args:
        exc: Raised exception.

    Returns:
        Integer process exit code.
    """
    return int(getattr(exc, "exit_code", 1))
