"""Position sizing policies."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from signallab.core.research.strategy import PositionSizing

KELLY_ASSUMED_AVG_WIN = 0.15
KELLY_FRACTION_CAP = 0.25
VOLATILITY_SCALE = 10.0


def _field(record: Mapping[str, Any] | None, key: str) -> float | None:
    if record is None:
        return None
    value = record.get(key)
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def estimate_daily_range_volatility(price_record: Mapping[str, Any] | None) -> float:
    """Daily range ``(high - low) / close`` as a volatility proxy."""
    high = _field(price_record, "high")
    low = _field(price_record, "low")
    close = _field(price_record, "close")
    if high is None or low is None or close is None or close <= 0:
        return 0.0
    return max(0.0, (high - low) / close)


def kelly_fraction(confidence: float | None) -> float:
    """
    Simplified Kelly fraction using prediction confidence as the win rate.

    ``f = (avg_win * p - (1 - p)) / avg_win`` clamped to ``[0, 0.25]``.
    """
    if confidence is None:
        return 0.0
    win_rate = min(max(confidence / 100.0, 0.0), 1.0)
    kelly = (KELLY_ASSUMED_AVG_WIN * win_rate - (1.0 - win_rate)) / KELLY_ASSUMED_AVG_WIN
    return max(0.0, min(KELLY_FRACTION_CAP, kelly))


def calculate_position_size(
    sizing: PositionSizing,
    portfolio_value: float,
    cash: float,
    price_record: Mapping[str, Any] | None = None,
    prediction: Mapping[str, Any] | None = None,
) -> float:
    """
    Translate a sizing policy into a cash amount.

    Args:
        sizing: Strategy sizing policy.
        portfolio_value: Current total portfolio value.
        cash: Cash available right now.
        price_record: Price record of the triggering day.
        prediction: Prediction record that triggered the entry.

    Returns:
        Amount to commit, never negative and never above ``cash`` or the
        policy's ``max_position_size``.
    """
    if sizing.type == "fixed_amount":
        position_size = sizing.value
    elif sizing.type == "percentage":
        position_size = portfolio_value * sizing.value / 100.0
    elif sizing.type == "kelly_criterion":
        position_size = kelly_fraction(_field(prediction, "confidence")) * portfolio_value
    elif sizing.type == "volatility_adjusted":
        volatility = estimate_daily_range_volatility(price_record)
        base_size = portfolio_value * sizing.value / 100.0
        position_size = base_size / max(1.0, volatility * VOLATILITY_SCALE)
    else:
        raise ValueError(f"Unsupported position sizing type: {sizing.type}")

    if sizing.max_position_size is not None:
        position_size = min(position_size, sizing.max_position_size)
    position_size = min(position_size, cash)
    return max(0.0, float(position_size))
