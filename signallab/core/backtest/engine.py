"""Day-by-day portfolio simulation engine."""

from __future__ import annotations

import asyncio
import math
from collections.abc import Iterable, Mapping
from typing import Any

import numpy as np
import pandas as pd

from signallab.core.backtest.benchmark import (
    BenchmarkComparator,
    asset_benchmark_returns,
    synthesize_benchmark_returns,
)
from signallab.core.backtest.metrics import (
    calculate_daily_returns,
    calculate_performance_metrics,
    calculate_risk_metrics,
    calculate_trade_statistics,
)
from signallab.core.backtest.portfolio import PortfolioState, Position
from signallab.core.backtest.rules import evaluate_exit, exit_fill_price, meets_entry_conditions
from signallab.core.backtest.sizing import calculate_position_size
from signallab.core.backtest.types import (
    BacktestPeriod,
    BacktestResult,
    BenchmarkComparison,
    EngineSettings,
)
from signallab.core.data.base import HistoricalDataSource
from signallab.core.data.loader import HistoricalDataLoader
from signallab.core.data.series import AssetSeries, DateLike, record_to_dict, to_utc_timestamp
from signallab.core.research.strategy import Strategy, parse_strategy
from signallab.core.utils.errors import BacktestError
from signallab.core.utils.logging import get_logger

DEFAULT_INITIAL_CAPITAL = 100_000.0
_LOGGER = get_logger(__name__)


class BacktestEngine:
    """
    Replay strategies against historical price and prediction data.

    An engine holds only immutable settings and a read-only data source, so
    one instance may serve concurrent runs; each run owns its own
    :class:`PortfolioState` and random generator.
    """

    def __init__(
        self,
        source: HistoricalDataSource,
        settings: EngineSettings | None = None,
        assets: Iterable[str] | None = None,
        max_workers: int = 1,
    ) -> None:
        """
        Initialize an engine.

        Args:
            source: Historical data source.
            settings: Engine settings; defaults apply when omitted.
            assets: Optional subset of the source universe to trade.
            max_workers: Threads used while loading asset data.
        """
        self.settings = settings or EngineSettings()
        self.loader = HistoricalDataLoader(source, assets=assets, max_workers=max_workers)
        self.comparator = BenchmarkComparator(
            risk_free_rate=self.settings.risk_free_rate,
            trading_days_per_year=self.settings.trading_days_per_year,
        )

    def run_backtest(
        self,
        strategy: Strategy | Mapping[str, Any],
        start_date: DateLike,
        end_date: DateLike,
        initial_capital: float = DEFAULT_INITIAL_CAPITAL,
    ) -> BacktestResult:
        """
        Load historical data and simulate a strategy over an inclusive day range.

        Args:
            strategy: Strategy definition (or its raw mapping).
            start_date: First simulated day.
            end_date: Last simulated day.
            initial_capital: Starting cash.

        Returns:
            Backtest result.

        Raises:
            BacktestError: If the arguments are invalid.
            DataUnavailableError: If no historical data exists for the period.
        """
        resolved_strategy = parse_strategy(strategy)
        start_day, end_day = self._validate_run(start_date, end_date, initial_capital)
        _LOGGER.info(
            "Starting backtest for strategy %s from %s to %s with capital %.2f",
            resolved_strategy.id,
            start_day.date().isoformat(),
            end_day.date().isoformat(),
            initial_capital,
        )
        data_by_asset = self.loader.load(start_day, end_day)
        return self.simulate(resolved_strategy, data_by_asset, start_day, end_day, initial_capital)

    async def run_backtest_async(
        self,
        strategy: Strategy | Mapping[str, Any],
        start_date: DateLike,
        end_date: DateLike,
        initial_capital: float = DEFAULT_INITIAL_CAPITAL,
    ) -> BacktestResult:
        """Awaitable :meth:`run_backtest`, executed on a worker thread."""
        return await asyncio.to_thread(
            self.run_backtest, strategy, start_date, end_date, initial_capital
        )

    @staticmethod
    def _validate_run(
        start_date: DateLike,
        end_date: DateLike,
        initial_capital: float,
    ) -> tuple[pd.Timestamp, pd.Timestamp]:
        if not math.isfinite(initial_capital) or initial_capital <= 0:
            raise BacktestError("initial_capital must be a positive finite number.")
        start_day = to_utc_timestamp(start_date).normalize()
        end_day = to_utc_timestamp(end_date).normalize()
        if start_day > end_day:
            raise BacktestError("start_date must be before or equal to end_date.")
        return start_day, end_day

    def simulate(
        self,
        strategy: Strategy,
        data_by_asset: Mapping[str, AssetSeries],
        start_date: DateLike,
        end_date: DateLike,
        initial_capital: float = DEFAULT_INITIAL_CAPITAL,
    ) -> BacktestResult:
        """
        Run the daily simulation over already-loaded data.

        Each day: exits, entries, mark-to-market, risk check, snapshot. Open
        positions are force-closed after the last day.
        """
        start_day, end_day = self._validate_run(start_date, end_date, initial_capital)
        days = list(pd.date_range(start_day, end_day, freq="D"))
        state = PortfolioState.start(initial_capital)

        for day in days:
            state.begin_day()
            self._evaluate_exits(state, strategy, data_by_asset, day)
            self._evaluate_entries(state, strategy, data_by_asset, day)
            self._mark_to_market(state, data_by_asset, day)
            self._apply_risk_limits(state, strategy, day)
            state.record_snapshot(day)

        self._close_all(state, days[-1])

        result = self._build_result(strategy, state, data_by_asset, days)
        _LOGGER.info(
            "Backtest %s completed: total_return=%.2f%% sharpe=%.3f max_drawdown=%.2f%% trades=%d",
            strategy.id,
            result.performance_metrics.total_return,
            result.performance_metrics.sharpe_ratio,
            result.performance_metrics.max_drawdown,
            result.trade_statistics.total_trades,
        )
        return result

    def _evaluate_exits(
        self,
        state: PortfolioState,
        strategy: Strategy,
        data_by_asset: Mapping[str, AssetSeries],
        day: pd.Timestamp,
    ) -> None:
        conditions = strategy.exit_conditions
        for asset_id in sorted(state.positions):
            position = state.positions[asset_id]
            series = data_by_asset.get(asset_id)
            close = None
            if series is not None:
                close = series.close_near(day, self.settings.match_tolerance)
            if close is None:
                _LOGGER.debug("No price for %s near %s; exit check skipped", asset_id, day.date())
                continue

            reason = evaluate_exit(conditions, position.pnl_pct_at(close), position.hold_days(day))
            if reason is None:
                continue
            fill_price = exit_fill_price(
                reason, conditions, position.entry_price, close, self.settings.exit_fill
            )
            trade = state.close_position(asset_id, day, fill_price, reason)
            _LOGGER.debug(
                "EXIT %s at %.6f (%s, pnl %.1f%%)",
                trade.symbol,
                trade.exit_price,
                trade.exit_reason,
                trade.pnl_pct,
            )

    def _evaluate_entries(
        self,
        state: PortfolioState,
        strategy: Strategy,
        data_by_asset: Mapping[str, AssetSeries],
        day: pd.Timestamp,
    ) -> None:
        max_positions = strategy.risk_management.max_positions
        tolerance = self.settings.match_tolerance
        for asset_id in sorted(data_by_asset):
            if not state.can_enter(max_positions):
                return
            if not state.may_open(asset_id):
                continue

            series = data_by_asset[asset_id]
            prediction = series.prediction_near(day, tolerance)
            price = series.price_near(day, tolerance)
            if prediction is None or price is None:
                continue
            if not meets_entry_conditions(strategy.entry_conditions, prediction, price):
                continue

            entry_price = float(price["close"])
            if not math.isfinite(entry_price) or entry_price <= 0:
                continue
            position_size = calculate_position_size(
                strategy.position_sizing,
                portfolio_value=state.portfolio_value,
                cash=state.cash,
                price_record=price,
                prediction=prediction,
            )
            if position_size <= 0 or position_size > state.cash:
                continue

            state.open_position(
                Position(
                    asset_id=asset_id,
                    symbol=series.display_symbol,
                    entry_date=day,
                    entry_price=entry_price,
                    quantity=position_size / entry_price,
                    initial_value=position_size,
                    prediction=record_to_dict(prediction),
                )
            )
            _LOGGER.debug(
                "ENTER %s at %.6f (%.2f committed)",
                series.display_symbol,
                entry_price,
                position_size,
            )

    def _mark_to_market(
        self,
        state: PortfolioState,
        data_by_asset: Mapping[str, AssetSeries],
        day: pd.Timestamp,
    ) -> None:
        for asset_id, position in state.positions.items():
            series = data_by_asset.get(asset_id)
            if series is None:
                continue
            close = series.close_near(day, self.settings.match_tolerance)
            if close is not None:
                position.mark(close)
        state.update_peak()

    def _apply_risk_limits(
        self,
        state: PortfolioState,
        strategy: Strategy,
        day: pd.Timestamp,
    ) -> None:
        """Apply the drawdown policy as an explicit transition of ``state.risk_state``."""
        limit = strategy.risk_management.max_drawdown_limit
        if limit is None or state.risk_state == "liquidated":
            return

        drawdown = state.drawdown_pct
        if drawdown <= limit:
            if state.risk_state == "halted":
                _LOGGER.info("Drawdown back within limit on %s; entries resumed", day.date())
                state.risk_state = "active"
            return

        _LOGGER.warning(
            "Maximum drawdown limit exceeded on %s: %.2f%% > %.2f%%", day.date(), drawdown, limit
        )
        policy = self.settings.drawdown_policy
        if policy == "halt_entries":
            state.risk_state = "halted"
        elif policy == "liquidate":
            self._close_all(state, day)
            state.risk_state = "liquidated"

    def _close_all(self, state: PortfolioState, day: pd.Timestamp) -> None:
        """Force-close every open position at its last marked price."""
        for asset_id in sorted(state.positions):
            position = state.positions[asset_id]
            state.close_position(asset_id, day, position.current_price, "strategy_exit")

    def _benchmark_returns(
        self,
        data_by_asset: Mapping[str, AssetSeries],
        days: list[pd.Timestamp],
        length: int,
    ) -> tuple[pd.Series | None, float]:
        benchmark = self.settings.benchmark
        if benchmark.mode == "none":
            return None, 0.0
        if benchmark.mode == "asset":
            asset_id = str(benchmark.asset_id)
            series = data_by_asset.get(asset_id)
            if series is None:
                raise BacktestError(f"Benchmark asset '{asset_id}' has no data in the period.")
            return asset_benchmark_returns(series, days, self.settings.match_tolerance)

        rng = np.random.default_rng(self.settings.seed)
        returns = synthesize_benchmark_returns(
            length,
            benchmark.period_return_pct / 100.0,
            benchmark.daily_noise,
            rng,
        )
        return returns, benchmark.period_return_pct

    def _build_result(
        self,
        strategy: Strategy,
        state: PortfolioState,
        data_by_asset: Mapping[str, AssetSeries],
        days: list[pd.Timestamp],
    ) -> BacktestResult:
        settings = self.settings
        daily_returns = calculate_daily_returns(
            [snapshot.portfolio_value for snapshot in state.snapshots]
        )
        final_value = state.portfolio_value
        duration_days = int((days[-1] - days[0]) // pd.Timedelta(days=1))

        benchmark_returns, benchmark_return_pct = self._benchmark_returns(
            data_by_asset, days, int(daily_returns.shape[0])
        )
        if benchmark_returns is None:
            comparison = BenchmarkComparison()
        else:
            comparison = self.comparator.compare(
                daily_returns, benchmark_returns, benchmark_return_pct
            )

        return BacktestResult(
            strategy_id=strategy.id,
            period=BacktestPeriod(
                start_date=days[0].date(),
                end_date=days[-1].date(),
                duration_days=duration_days,
            ),
            initial_capital=state.initial_capital,
            final_portfolio_value=final_value,
            performance_metrics=calculate_performance_metrics(
                daily_returns,
                initial_capital=state.initial_capital,
                final_value=final_value,
                duration_days=duration_days,
                trades=state.trades,
                risk_free_rate=settings.risk_free_rate,
                trading_days_per_year=settings.trading_days_per_year,
                calendar_days_per_year=settings.calendar_days_per_year,
            ),
            risk_metrics=calculate_risk_metrics(
                daily_returns,
                benchmark_returns=benchmark_returns,
                trading_days_per_year=settings.trading_days_per_year,
            ),
            trade_statistics=calculate_trade_statistics(state.trades),
            portfolio_evolution=tuple(state.snapshots),
            trades=tuple(state.trades),
            benchmark_comparison=comparison,
        )
