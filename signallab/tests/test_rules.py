"""Unit tests for entry and exit rules."""

from __future__ import annotations

import unittest

from signallab.core.backtest.rules import evaluate_exit, exit_fill_price, meets_entry_conditions
from signallab.core.research.strategy import EntryConditions, ExitConditions

PREDICTION = {
    "ai_score": 85.0,
    "confidence": 80.0,
    "prediction_type": "bullish",
    "rug_risk": "medium",
    "whale_activity": 12.0,
    "social_sentiment": 0.4,
}
PRICE = {"close": 1.0, "volume": 75_000.0, "market_cap": 2_000_000.0}


class TestEntryConditions(unittest.TestCase):
    """Validate conjunctive entry predicates."""

    def test_unset_conditions_always_pass(self) -> None:
        self.assertTrue(meets_entry_conditions(EntryConditions(), {}, {}))

    def test_all_conditions_satisfied(self) -> None:
        conditions = EntryConditions(
            ai_score_min=80,
            ai_score_max=90,
            prediction_type="bullish",
            confidence_min=75,
            rug_risk_max="medium",
            whale_activity_min=10,
            social_sentiment_min=0.2,
            volume_min=50_000,
            market_cap_min=1_000_000,
            market_cap_max=3_000_000,
        )
        self.assertTrue(meets_entry_conditions(conditions, PREDICTION, PRICE))

    def test_each_condition_can_block(self) -> None:
        blocking = [
            EntryConditions(ai_score_min=90),
            EntryConditions(ai_score_max=80),
            EntryConditions(prediction_type="bearish"),
            EntryConditions(confidence_min=81),
            EntryConditions(rug_risk_max="low"),
            EntryConditions(whale_activity_min=20),
            EntryConditions(social_sentiment_min=0.5),
            EntryConditions(volume_min=100_000),
            EntryConditions(market_cap_min=5_000_000),
            EntryConditions(market_cap_max=1_000_000),
        ]
        for conditions in blocking:
            with self.subTest(conditions=conditions):
                self.assertFalse(meets_entry_conditions(conditions, PREDICTION, PRICE))

    def test_missing_value_fails_configured_condition(self) -> None:
        prediction = {**PREDICTION, "rug_risk": None}
        self.assertFalse(
            meets_entry_conditions(EntryConditions(rug_risk_max="high"), prediction, PRICE)
        )
        self.assertFalse(meets_entry_conditions(EntryConditions(volume_min=1), PREDICTION, {}))

    def test_rug_risk_ordering(self) -> None:
        conditions = EntryConditions(rug_risk_max="medium")
        for rug_risk, expected in (("low", True), ("medium", True), ("high", False)):
            with self.subTest(rug_risk=rug_risk):
                prediction = {**PREDICTION, "rug_risk": rug_risk}
                self.assertEqual(meets_entry_conditions(conditions, prediction, PRICE), expected)


class TestExitRules(unittest.TestCase):
    """Validate exit priority and fill prices."""

    def setUp(self) -> None:
        self.conditions = ExitConditions(take_profit_pct=30, stop_loss_pct=15, max_hold_days=7)

    def test_no_exit_inside_band(self) -> None:
        self.assertIsNone(evaluate_exit(self.conditions, pnl_pct=5.0, hold_days=3))

    def test_take_profit_has_priority_over_max_hold(self) -> None:
        self.assertEqual(evaluate_exit(self.conditions, 31.0, 10), "take_profit")

    def test_stop_loss_has_priority_over_max_hold(self) -> None:
        self.assertEqual(evaluate_exit(self.conditions, -15.0, 10), "stop_loss")

    def test_max_hold(self) -> None:
        self.assertEqual(evaluate_exit(self.conditions, 0.0, 7), "max_hold")

    def test_unset_thresholds_never_trigger(self) -> None:
        self.assertIsNone(evaluate_exit(ExitConditions(), -99.0, 1_000))

    def test_threshold_fill_prices(self) -> None:
        self.assertAlmostEqual(
            exit_fill_price("take_profit", self.conditions, 100.0, 135.0), 130.0
        )
        self.assertAlmostEqual(exit_fill_price("stop_loss", self.conditions, 100.0, 80.0), 85.0)
        self.assertEqual(exit_fill_price("max_hold", self.conditions, 100.0, 97.0), 97.0)

    def test_close_fill_prices(self) -> None:
        self.assertEqual(
            exit_fill_price("take_profit", self.conditions, 100.0, 135.0, exit_fill="close"),
            135.0,
        )


if __name__ == "__main__":
    unittest.main()
