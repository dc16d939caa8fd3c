"""Run-scoped portfolio state for the daily simulation loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

import pandas as pd

from signallab.core.backtest.types import EXIT_REASONS, ExitReason, PortfolioSnapshot, Trade
from signallab.core.utils.errors import BacktestError

RiskState = Literal["active", "halted", "liquidated"]


@dataclass
class Position:
    """An open holding in one asset."""

    asset_id: str
    symbol: str
    entry_date: pd.Timestamp
    entry_price: float
    quantity: float
    initial_value: float
    prediction: dict[str, Any] = field(default_factory=dict)
    current_price: float = field(init=False)

    def __post_init__(self) -> None:
        self.current_price = self.entry_price

    @property
    def current_value(self) -> float:
        return self.quantity * self.current_price

    def mark(self, price: float) -> None:
        """Revalue the position at ``price``."""
        self.current_price = float(price)

    def pnl_pct_at(self, price: float) -> float:
        """Unrealized P&L in percent if valued at ``price``."""
        return (price - self.entry_price) / self.entry_price * 100.0

    def hold_days(self, day: pd.Timestamp) -> int:
        """Whole days elapsed since entry."""
        return int((day - self.entry_date) // pd.Timedelta(days=1))


@dataclass
class PortfolioState:
    """
    Mutable state of one backtest run.

    Every step of the daily loop receives this object explicitly; nothing
    else in the engine holds run state.
    """

    initial_capital: float
    cash: float
    peak_value: float
    positions: dict[str, Position] = field(default_factory=dict)
    trades: list[Trade] = field(default_factory=list)
    snapshots: list[PortfolioSnapshot] = field(default_factory=list)
    risk_state: RiskState = "active"
    closed_today: set[str] = field(default_factory=set)

    @classmethod
    def start(cls, initial_capital: float) -> PortfolioState:
        """Create a flat, all-cash state."""
        return cls(
            initial_capital=float(initial_capital),
            cash=float(initial_capital),
            peak_value=float(initial_capital),
        )

    @property
    def positions_value(self) -> float:
        return sum(position.current_value for position in self.positions.values())

    @property
    def portfolio_value(self) -> float:
        return self.cash + self.positions_value

    @property
    def open_count(self) -> int:
        return len(self.positions)

    @property
    def drawdown_pct(self) -> float:
        """Percent decline from the peak value to the current value."""
        if self.peak_value <= 0:
            return 0.0
        return max(0.0, (self.peak_value - self.portfolio_value) / self.peak_value * 100.0)

    @property
    def trading_halted(self) -> bool:
        return self.risk_state != "active"

    def begin_day(self) -> None:
        """Start a new simulated day; exits from earlier days no longer block re-entry."""
        self.closed_today.clear()

    def may_open(self, asset_id: str) -> bool:
        """An asset that is open, or was closed today, cannot be opened now."""
        return asset_id not in self.positions and asset_id not in self.closed_today

    def can_enter(self, max_positions: int) -> bool:
        """Whether a new position may be opened now."""
        return not self.trading_halted and self.open_count < max_positions

    def open_position(self, position: Position) -> None:
        """Add a position and debit its initial value from cash."""
        if position.asset_id in self.positions:
            raise BacktestError(f"Position already open for asset '{position.asset_id}'.")
        if position.initial_value <= 0 or position.initial_value > self.cash:
            raise BacktestError(
                f"Cannot commit {position.initial_value:.2f} with {self.cash:.2f} cash available."
            )
        self.positions[position.asset_id] = position
        self.cash -= position.initial_value

    def close_position(
        self,
        asset_id: str,
        day: pd.Timestamp,
        exit_price: float,
        exit_reason: ExitReason,
    ) -> Trade:
        """Close one position, credit the proceeds, and append the trade to the ledger."""
        if exit_reason not in EXIT_REASONS:
            raise BacktestError(f"Unknown exit reason: {exit_reason}")
        position = self.positions.pop(asset_id)
        exit_value = position.quantity * exit_price
        pnl = exit_value - position.initial_value
        trade = Trade(
            asset_id=position.asset_id,
            symbol=position.symbol,
            entry_date=position.entry_date.date(),
            exit_date=day.date(),
            entry_price=position.entry_price,
            exit_price=float(exit_price),
            quantity=position.quantity,
            initial_value=position.initial_value,
            pnl=pnl,
            pnl_pct=pnl / position.initial_value * 100.0,
            hold_duration_days=position.hold_days(day),
            exit_reason=exit_reason,
            prediction=dict(position.prediction),
        )
        self.cash += exit_value
        self.trades.append(trade)
        self.closed_today.add(asset_id)
        return trade

    def update_peak(self) -> None:
        self.peak_value = max(self.peak_value, self.portfolio_value)

    def record_snapshot(self, day: pd.Timestamp) -> PortfolioSnapshot:
        """Append the end-of-day snapshot."""
        snapshot = PortfolioSnapshot(
            date=day.date(),
            portfolio_value=self.portfolio_value,
            cash=self.cash,
            positions_value=self.positions_value,
            drawdown_pct=self.drawdown_pct,
            open_positions=self.open_count,
            trading_halted=self.trading_halted,
        )
        self.snapshots.append(snapshot)
        return snapshot
