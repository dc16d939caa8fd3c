"""Entry and exit rule evaluation."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from signallab.core.backtest.types import ExitFill, ExitReason
from signallab.core.research.strategy import RUG_RISK_ORDER, EntryConditions, ExitConditions


def _number(record: Mapping[str, Any], key: str) -> float | None:
    value = record.get(key)
    if value is None or isinstance(value, str):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _label(record: Mapping[str, Any], key: str) -> str | None:
    value = record.get(key)
    return value if isinstance(value, str) else None


def _at_least(value: float | None, bound: float | None) -> bool:
    if bound is None:
        return True
    return value is not None and value >= bound


def _at_most(value: float | None, bound: float | None) -> bool:
    if bound is None:
        return True
    return value is not None and value <= bound


def meets_entry_conditions(
    conditions: EntryConditions,
    prediction: Mapping[str, Any],
    price: Mapping[str, Any],
) -> bool:
    """
    Check every configured entry condition (logical AND).

    Unset conditions always pass. A configured condition fails when the
    record lacks the value it tests.
    """
    ai_score = _number(prediction, "ai_score")
    if not _at_least(ai_score, conditions.ai_score_min):
        return False
    if not _at_most(ai_score, conditions.ai_score_max):
        return False
    if not _at_least(_number(prediction, "confidence"), conditions.confidence_min):
        return False
    if (
        conditions.prediction_type is not None
        and _label(prediction, "prediction_type") != conditions.prediction_type
    ):
        return False
    if conditions.rug_risk_max is not None:
        rug_risk = _label(prediction, "rug_risk")
        if rug_risk is None or RUG_RISK_ORDER[rug_risk] > RUG_RISK_ORDER[conditions.rug_risk_max]:
            return False
    if not _at_least(_number(prediction, "whale_activity"), conditions.whale_activity_min):
        return False
    if not _at_least(_number(prediction, "social_sentiment"), conditions.social_sentiment_min):
        return False
    if not _at_least(_number(price, "volume"), conditions.volume_min):
        return False

    market_cap = _number(price, "market_cap")
    return _at_least(market_cap, conditions.market_cap_min) and _at_most(
        market_cap, conditions.market_cap_max
    )


def evaluate_exit(
    conditions: ExitConditions,
    pnl_pct: float,
    hold_days: int,
) -> ExitReason | None:
    """Return the first breached exit rule (take-profit, stop-loss, max-hold), if any."""
    if conditions.take_profit_pct is not None and pnl_pct >= conditions.take_profit_pct:
        return "take_profit"
    if conditions.stop_loss_pct is not None and pnl_pct <= -conditions.stop_loss_pct:
        return "stop_loss"
    if conditions.max_hold_days is not None and hold_days >= conditions.max_hold_days:
        return "max_hold"
    return None


def exit_fill_price(
    reason: ExitReason,
    conditions: ExitConditions,
    entry_price: float,
    close: float,
    exit_fill: ExitFill = "threshold",
) -> float:
    """
    Price at which an exit is filled.

    With ``threshold`` fills, take-profit and stop-loss exits execute at the
    threshold level; every other exit executes at the close.
    """
    if exit_fill == "threshold":
        if reason == "take_profit" and conditions.take_profit_pct is not None:
            return entry_price * (1.0 + conditions.take_profit_pct / 100.0)
        if reason == "stop_loss" and conditions.stop_loss_pct is not None:
            return entry_price * (1.0 - conditions.stop_loss_pct / 100.0)
    return close
