"""Utility helpers."""

from signallab.core.utils.errors import (
    ArtifactError,
    BacktestError,
    ConfigLoadError,
    DataUnavailableError,
    DataValidationError,
    InsufficientDataError,
    SignalLabError,
    StrategyError,
    exit_code_for_exception,
)
from signallab.core.utils.logging import configure_logging, get_logger
from signallab.core.utils.manifest import RunManifestWriter
from signallab.core.utils.plotting import get_matplotlib_pyplot, save_portfolio_value_plot

__all__ = [
    "ArtifactError",
    "BacktestError",
    "ConfigLoadError",
    "DataUnavailableError",
    "DataValidationError",
    "InsufficientDataError",
    "RunManifestWriter",
    "SignalLabError",
    "StrategyError",
    "configure_logging",
    "exit_code_for_exception",
    "get_logger",
    "get_matplotlib_pyplot",
    "save_portfolio_value_plot",
]
