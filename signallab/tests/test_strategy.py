"""Tests for strategy definitions and built-in templates."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from pydantic import ValidationError

from signallab.core.research.strategy import (
    Strategy,
    get_strategy_template,
    get_strategy_templates,
    load_strategy_file,
    parse_strategy,
)
from signallab.core.utils.errors import StrategyError


class TestStrategyTemplates(unittest.TestCase):
    """Validate the built-in templates."""

    def test_templates(self) -> None:
        templates = {template.id: template for template in get_strategy_templates()}
        self.assertEqual(set(templates), {"high_confidence_momentum", "conservative_value"})
        momentum = templates["high_confidence_momentum"]
        self.assertEqual(momentum.entry_conditions.ai_score_min, 80)
        self.assertEqual(momentum.entry_conditions.prediction_type, "bullish")
        self.assertEqual(momentum.exit_conditions.take_profit_pct, 30)
        self.assertEqual(momentum.position_sizing.type, "percentage")
        self.assertEqual(momentum.risk_management.max_drawdown_limit, 25)

    def test_lookup(self) -> None:
        self.assertEqual(get_strategy_template(" conservative_value ").name, "Conservative Value")
        with self.assertRaises(StrategyError):
            get_strategy_template("moon_shot")


class TestStrategyParsing(unittest.TestCase):
    """Validate strategy validation rules."""

    def test_defaults(self) -> None:
        strategy = parse_strategy({"id": " basic "})
        self.assertEqual(strategy.id, "basic")
        self.assertEqual(strategy.name, "basic")
        self.assertEqual(strategy.position_sizing.type, "fixed_amount")
        self.assertEqual(strategy.position_sizing.value, 1_000.0)
        self.assertEqual(strategy.risk_management.max_positions, 10)
        self.assertIsNone(strategy.risk_management.max_drawdown_limit)

    def test_strategy_is_immutable(self) -> None:
        strategy = parse_strategy({"id": "frozen"})
        with self.assertRaises(ValidationError):
            strategy.id = "changed"  # type: ignore[misc]

    def test_invalid_definitions(self) -> None:
        invalid = [
            "not a mapping",
            {"id": ""},
            {"id": "x", "extra": True},
            {"id": "x", "entry_conditions": {"ai_score_min": 90, "ai_score_max": 10}},
            {"id": "x", "entry_conditions": {"rug_risk_max": "extreme"}},
            {"id": "x", "exit_conditions": {"stop_loss_pct": 150}},
            {"id": "x", "position_sizing": {"type": "percentage", "value": 150}},
            {"id": "x", "position_sizing": {"type": "martingale"}},
            {"id": "x", "risk_management": {"max_positions": 0}},
        ]
        for payload in invalid:
            with self.subTest(payload=payload), self.assertRaises(StrategyError):
                parse_strategy(payload)

    def test_passthrough(self) -> None:
        strategy = Strategy(id="ready")
        self.assertIs(parse_strategy(strategy), strategy)

    def test_load_strategy_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "strategy.yaml"
            path.write_text(
                "id: from_file\nentry_conditions:\n  ai_score_min: 70\n", encoding="utf-8"
            )
            strategy = load_strategy_file(path)
            self.assertEqual(strategy.id, "from_file")
            self.assertEqual(strategy.entry_conditions.ai_score_min, 70)
            with self.assertRaises(StrategyError):
                load_strategy_file(Path(temp_dir) / "missing.yaml")


if __name__ == "__main__":
    unittest.main()
