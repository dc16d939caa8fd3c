"""Data structures for backtest settings and results."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Literal

import pandas as pd

from signallab.core.utils.errors import BacktestError

ExitReason = Literal["take_profit", "stop_loss", "max_hold", "strategy_exit"]
EXIT_REASONS: tuple[str, ...] = ("take_profit", "stop_loss", "max_hold", "strategy_exit")
DrawdownPolicy = Literal["advisory", "halt_entries", "liquidate"]
ExitFill = Literal["threshold", "close"]
BenchmarkMode = Literal["synthetic", "asset", "none"]


@dataclass(frozen=True)
class BenchmarkSettings:
    """Where benchmark daily returns come from."""

    mode: BenchmarkMode = "synthetic"
    period_return_pct: float = 150.0
    daily_noise: float = 0.03
    asset_id: str | None = None

    def __post_init__(self) -> None:
        if self.mode not in ("synthetic", "asset", "none"):
            raise BacktestError(f"Unknown benchmark mode: {self.mode}")
        if self.mode == "asset" and not (self.asset_id and self.asset_id.strip()):
            raise BacktestError("benchmark asset_id is required when mode is 'asset'.")
        if self.period_return_pct <= -100:
            raise BacktestError("benchmark period_return_pct must be greater than -100.")
        if self.daily_noise < 0:
            raise BacktestError("benchmark daily_noise must be non-negative.")


@dataclass(frozen=True)
class EngineSettings:
    """Immutable per-engine configuration shared by every run of that engine."""

    risk_free_rate: float = 0.02
    trading_days_per_year: int = 252
    calendar_days_per_year: int = 365
    match_tolerance_hours: float = 24.0
    seed: int | None = None
    drawdown_policy: DrawdownPolicy = "advisory"
    exit_fill: ExitFill = "threshold"
    benchmark: BenchmarkSettings = field(default_factory=BenchmarkSettings)

    def __post_init__(self) -> None:
        if self.trading_days_per_year <= 0 or self.calendar_days_per_year <= 0:
            raise BacktestError("Annualization day counts must be greater than 0.")
        if self.match_tolerance_hours <= 0:
            raise BacktestError("match_tolerance_hours must be greater than 0.")
        if self.drawdown_policy not in ("advisory", "halt_entries", "liquidate"):
            raise BacktestError(f"Unknown drawdown policy: {self.drawdown_policy}")
        if self.exit_fill not in ("threshold", "close"):
            raise BacktestError(f"Unknown exit fill mode: {self.exit_fill}")

    @property
    def match_tolerance(self) -> pd.Timedelta:
        """Maximum distance between a simulated day and a matching record."""
        return pd.Timedelta(hours=self.match_tolerance_hours)


@dataclass(frozen=True)
class Trade:
    """A closed position."""

    asset_id: str
    symbol: str
    entry_date: date
    exit_date: date
    entry_price: float
    exit_price: float
    quantity: float
    initial_value: float
    pnl: float
    pnl_pct: float
    hold_duration_days: int
    exit_reason: ExitReason
    prediction: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PortfolioSnapshot:
    """End-of-day portfolio state."""

    date: date
    portfolio_value: float
    cash: float
    positions_value: float
    drawdown_pct: float
    open_positions: int
    trading_halted: bool = False


@dataclass(frozen=True)
class BacktestPeriod:
    start_date: date
    end_date: date
    duration_days: int


@dataclass(frozen=True)
class PerformanceMetrics:
    """Return and risk-adjusted return metrics; returns and drawdown in percent."""

    total_return: float = 0.0
    annualized_return: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    max_drawdown: float = 0.0
    volatility: float = 0.0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    calmar_ratio: float = 0.0


@dataclass(frozen=True)
class RiskMetrics:
    """Tail and downside risk metrics, in percent."""

    value_at_risk_95: float = 0.0
    expected_shortfall: float = 0.0
    downside_deviation: float = 0.0
    upside_capture: float = 0.0
    downside_capture: float = 0.0


@dataclass(frozen=True)
class TradeStatistics:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    avg_winning_trade: float = 0.0
    avg_losing_trade: float = 0.0
    avg_trade_duration_days: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0


@dataclass(frozen=True)
class BenchmarkComparison:
    """Strategy returns relative to a benchmark. Alpha is a daily figure."""

    benchmark_return: float = 0.0
    alpha: float = 0.0
    beta: float = 1.0
    correlation: float = 0.0
    tracking_error: float = 0.0
    information_ratio: float = 0.0


def _jsonable(value: Any) -> Any:
    """Convert dataclass payload values into JSON-serializable primitives."""
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


@dataclass(frozen=True)
class BacktestResult:
    """Container for one completed backtest."""

    strategy_id: str
    period: BacktestPeriod
    initial_capital: float
    final_portfolio_value: float
    performance_metrics: PerformanceMetrics
    risk_metrics: RiskMetrics
    trade_statistics: TradeStatistics
    portfolio_evolution: tuple[PortfolioSnapshot, ...]
    trades: tuple[Trade, ...]
    benchmark_comparison: BenchmarkComparison

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready mapping of the full result."""
        return _jsonable(asdict(self))

    def metrics_summary(self) -> dict[str, float]:
        """Flatten the headline metrics into one ``name -> value`` mapping."""
        summary: dict[str, float] = {}
        for group in (self.performance_metrics, self.risk_metrics, self.benchmark_comparison):
            summary.update({key: float(value) for key, value in asdict(group).items()})
        summary["total_trades"] = float(self.trade_statistics.total_trades)
        summary["final_portfolio_value"] = float(self.final_portfolio_value)
        return summary

    def snapshots_frame(self) -> pd.DataFrame:
        """Return the snapshot history as a dataframe indexed by UTC day."""
        columns = [
            "portfolio_value",
            "cash",
            "positions_value",
            "drawdown_pct",
            "open_positions",
            "trading_halted",
        ]
        if not self.portfolio_evolution:
            return pd.DataFrame(columns=columns, index=pd.DatetimeIndex([], tz="UTC", name="date"))
        frame = pd.DataFrame([asdict(snapshot) for snapshot in self.portfolio_evolution])
        frame["date"] = pd.to_datetime(frame["date"], utc=True)
        return frame.set_index("date").loc[:, columns]

    def trades_frame(self) -> pd.DataFrame:
        """Return the trade ledger as a dataframe (one row per trade)."""
        rows = []
        for trade in self.trades:
            row = asdict(trade)
            row.pop("prediction")
            rows.append(row)
        return pd.DataFrame(rows)
