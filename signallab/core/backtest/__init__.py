"""Backtest engine exports."""

from signallab.core.backtest.benchmark import BenchmarkComparator
from signallab.core.backtest.engine import BacktestEngine
from signallab.core.backtest.metrics import (
    calculate_max_drawdown,
    calculate_performance_metrics,
    calculate_risk_metrics,
    calculate_trade_statistics,
)
from signallab.core.backtest.portfolio import PortfolioState, Position
from signallab.core.backtest.sizing import calculate_position_size
from signallab.core.backtest.types import (
    BacktestResult,
    BenchmarkSettings,
    EngineSettings,
    PortfolioSnapshot,
    Trade,
)

__all__ = [
    "BacktestEngine",
    "BacktestResult",
    "BenchmarkComparator",
    "BenchmarkSettings",
    "EngineSettings",
    "PortfolioSnapshot",
    "PortfolioState",
    "Position",
    "Trade",
    "calculate_max_drawdown",
    "calculate_performance_metrics",
    "calculate_position_size",
    "calculate_risk_metrics",
    "calculate_trade_statistics",
]
