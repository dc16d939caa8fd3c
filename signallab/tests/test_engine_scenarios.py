"""End-to-end simulation scenarios for the backtest engine."""

from __future__ import annotations

import unittest
from datetime import date

from signallab.core.backtest.engine import BacktestEngine
from signallab.core.backtest.types import EngineSettings
from signallab.core.data.memory import InMemoryDataSource
from signallab.core.utils.errors import BacktestError, DataUnavailableError, StrategyError
from signallab.tests.helpers import (
    entry_then_idle,
    make_prediction_frame,
    make_price_frame,
    make_source,
    make_strategy,
)

START = "2024-01-01"
END = "2024-01-10"


def _engine(closes: list[float], scores: list[float], **settings: object) -> BacktestEngine:
    source = make_source({"tok": closes}, {"tok": scores}, symbols={"tok": "TOK"})
    return BacktestEngine(source, EngineSettings(seed=42, **settings))


class TestExitScenarios(unittest.TestCase):
    """Validate each exit path on a single asset."""

    def test_take_profit(self) -> None:
        closes = [100.0, 110.0] + [135.0] * 8
        engine = _engine(closes, entry_then_idle(10))
        result = engine.run_backtest(make_strategy(), START, END, initial_capital=10_000.0)

        self.assertEqual(len(result.trades), 1)
        trade = result.trades[0]
        self.assertEqual(trade.exit_reason, "take_profit")
        self.assertAlmostEqual(trade.pnl_pct, 30.0)
        self.assertEqual(trade.hold_duration_days, 2)
        self.assertEqual(trade.symbol, "TOK")
        self.assertEqual(trade.entry_date, date(2024, 1, 1))
        self.assertEqual(trade.exit_date, date(2024, 1, 3))
        self.assertAlmostEqual(trade.prediction["ai_score"], 85.0)
        self.assertAlmostEqual(result.final_portfolio_value, 10_300.0)
        self.assertAlmostEqual(result.performance_metrics.total_return, 3.0)
        self.assertEqual(result.trade_statistics.winning_trades, 1)
        self.assertAlmostEqual(result.performance_metrics.win_rate, 100.0)

    def test_stop_loss(self) -> None:
        closes = [100.0] + [80.0] * 9
        engine = _engine(closes, entry_then_idle(10))
        result = engine.run_backtest(make_strategy(), START, END, initial_capital=10_000.0)

        self.assertEqual(len(result.trades), 1)
        trade = result.trades[0]
        self.assertEqual(trade.exit_reason, "stop_loss")
        self.assertAlmostEqual(trade.pnl_pct, -15.0)
        self.assertEqual(trade.hold_duration_days, 1)
        self.assertAlmostEqual(result.final_portfolio_value, 9_850.0)
        self.assertEqual(result.trade_statistics.losing_trades, 1)

    def test_reentry_waits_for_the_next_day(self) -> None:
        engine = _engine([100.0, 80.0, 80.0, 80.0], [85.0] * 4)
        result = engine.run_backtest(make_strategy(), START, "2024-01-04", 10_000.0)

        self.assertEqual(
            [(trade.entry_date, trade.exit_date, trade.exit_reason) for trade in result.trades],
            [
                (date(2024, 1, 1), date(2024, 1, 2), "stop_loss"),
                (date(2024, 1, 3), date(2024, 1, 4), "strategy_exit"),
            ],
        )
        exit_days = {trade.exit_date for trade in result.trades}
        entry_days = {trade.entry_date for trade in result.trades}
        self.assertFalse(exit_days & entry_days)
        self.assertEqual(result.portfolio_evolution[1].open_positions, 0)
        self.assertAlmostEqual(result.trades[1].entry_price, 80.0)

        ledger = result.trades_frame()
        self.assertEqual(len(ledger), 2)
        self.assertNotIn("prediction", ledger.columns)
        self.assertEqual(list(ledger["exit_reason"]), ["stop_loss", "strategy_exit"])
        self.assertAlmostEqual(ledger["pnl"].sum(), sum(trade.pnl for trade in result.trades))

    def test_no_qualifying_entries(self) -> None:
        engine = _engine([100.0] * 10, [50.0] * 10)
        result = engine.run_backtest(make_strategy(), START, END, initial_capital=10_000.0)

        self.assertEqual(result.trade_statistics.total_trades, 0)
        self.assertEqual(result.performance_metrics.total_return, 0.0)
        self.assertEqual(result.performance_metrics.sharpe_ratio, 0.0)
        self.assertEqual(len(result.portfolio_evolution), 10)
        self.assertTrue(
            all(snapshot.portfolio_value == 10_000.0 for snapshot in result.portfolio_evolution)
        )

    def test_max_hold(self) -> None:
        engine = _engine([100.0] * 10, entry_then_idle(10))
        result = engine.run_backtest(make_strategy(), START, END, initial_capital=10_000.0)

        trade = result.trades[0]
        self.assertEqual(trade.exit_reason, "max_hold")
        self.assertEqual(trade.hold_duration_days, 7)
        self.assertEqual(trade.exit_date, date(2024, 1, 8))
        self.assertAlmostEqual(trade.pnl, 0.0)

    def test_open_positions_are_closed_at_period_end(self) -> None:
        engine = _engine([100.0, 105.0, 110.0], entry_then_idle(3))
        result = engine.run_backtest(make_strategy(), START, "2024-01-03", 10_000.0)

        trade = result.trades[0]
        self.assertEqual(trade.exit_reason, "strategy_exit")
        self.assertEqual(trade.exit_date, date(2024, 1, 3))
        self.assertAlmostEqual(trade.pnl_pct, 10.0)
        self.assertAlmostEqual(result.final_portfolio_value, 10_100.0)

    def test_close_fill_mode_exits_at_close(self) -> None:
        closes = [100.0, 110.0] + [135.0] * 8
        engine = _engine(closes, entry_then_idle(10), exit_fill="close")
        result = engine.run_backtest(make_strategy(), START, END, initial_capital=10_000.0)
        self.assertAlmostEqual(result.trades[0].pnl_pct, 35.0)

    def test_entry_requires_matching_price_record(self) -> None:
        source = InMemoryDataSource(
            prices={"tok": make_price_frame([100.0] * 5, start="2024-01-06")},
            predictions={"tok": make_prediction_frame([85.0] + [50.0] * 9)},
        )
        engine = BacktestEngine(source, EngineSettings(seed=1))
        result = engine.run_backtest(make_strategy(), START, END, initial_capital=10_000.0)
        self.assertEqual(result.trade_statistics.total_trades, 0)


class TestRunValidation(unittest.TestCase):
    """Validate argument and data errors."""

    def setUp(self) -> None:
        self.engine = _engine([100.0] * 10, [50.0] * 10)

    def test_non_positive_capital(self) -> None:
        with self.assertRaises(BacktestError):
            self.engine.run_backtest(make_strategy(), START, END, initial_capital=0.0)

    def test_reversed_period(self) -> None:
        with self.assertRaises(BacktestError):
            self.engine.run_backtest(make_strategy(), END, START)

    def test_invalid_strategy_mapping(self) -> None:
        with self.assertRaises(StrategyError):
            self.engine.run_backtest({"id": "x", "unknown": 1}, START, END)

    def test_strategy_mapping_is_accepted(self) -> None:
        result = self.engine.run_backtest(
            {"id": "mapping", "entry_conditions": {"ai_score_min": 99}}, START, END
        )
        self.assertEqual(result.strategy_id, "mapping")

    def test_period_without_data(self) -> None:
        with self.assertRaises(DataUnavailableError):
            self.engine.run_backtest(make_strategy(), "2030-01-01", "2030-01-05")


class TestAsyncRun(unittest.IsolatedAsyncioTestCase):
    """Validate the awaitable entry point."""

    async def test_async_run_matches_sync_run(self) -> None:
        engine = _engine([100.0, 110.0] + [135.0] * 8, entry_then_idle(10))
        async_result = await engine.run_backtest_async(make_strategy(), START, END, 10_000.0)
        sync_result = engine.run_backtest(make_strategy(), START, END, 10_000.0)
        self.assertEqual(async_result.to_dict(), sync_result.to_dict())


if __name__ == "__main__":
    unittest.main()
