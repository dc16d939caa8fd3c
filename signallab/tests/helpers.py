"""Test helpers for deterministic backtest cases."""

from __future__ import annotations

import textwrap
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pandas as pd

from signallab.core.data.memory import InMemoryDataSource
from signallab.core.data.parquet_store import ParquetDataSource
from signallab.core.research.strategy import Strategy

START = "2024-01-01"


def _daily_index(periods: int, start: str = START) -> pd.DatetimeIndex:
    return pd.date_range(start, periods=periods, freq="D", tz="UTC", name="timestamp")


def make_price_frame(
    close_values: Sequence[float],
    start: str = START,
    volume: float = 100_000.0,
    market_cap: float = 5_000_000.0,
    spread_pct: float = 0.0,
) -> pd.DataFrame:
    """Build deterministic daily price records from close values."""
    index = _daily_index(len(close_values), start)
    close = pd.Series(close_values, index=index, dtype=float)
    return pd.DataFrame(
        {
            "open": close,
            "high": close * (1.0 + spread_pct / 100.0),
            "low": close * (1.0 - spread_pct / 100.0),
            "close": close,
            "volume": volume,
            "market_cap": market_cap,
        },
        index=index,
    )


def make_prediction_frame(
    ai_scores: Sequence[float],
    start: str = START,
    confidence: float = 80.0,
    prediction_type: str = "bullish",
    rug_risk: str = "low",
) -> pd.DataFrame:
    """Build deterministic daily prediction records from AI scores."""
    index = _daily_index(len(ai_scores), start)
    return pd.DataFrame(
        {
            "ai_score": list(ai_scores),
            "confidence": confidence,
            "prediction_type": prediction_type,
            "rug_risk": rug_risk,
            "whale_activity": 10.0,
            "social_sentiment": 0.5,
        },
        index=index,
    )


def make_strategy(**overrides: Any) -> Strategy:
    """Build the reference test strategy, with top-level sections overridable."""
    payload: dict[str, Any] = {
        "id": "test_strategy",
        "entry_conditions": {"ai_score_min": 80},
        "exit_conditions": {"take_profit_pct": 30, "stop_loss_pct": 15, "max_hold_days": 7},
        "position_sizing": {"type": "fixed_amount", "value": 1000},
        "risk_management": {"max_positions": 10},
    }
    payload.update(overrides)
    return Strategy.model_validate(payload)


def make_source(
    closes_by_asset: Mapping[str, Sequence[float]],
    scores_by_asset: Mapping[str, Sequence[float]],
    symbols: Mapping[str, str] | None = None,
) -> InMemoryDataSource:
    """Build an in-memory source from per-asset close and AI score sequences."""
    return InMemoryDataSource(
        prices={asset: make_price_frame(closes) for asset, closes in closes_by_asset.items()},
        predictions={
            asset: make_prediction_frame(scores) for asset, scores in scores_by_asset.items()
        },
        symbols=symbols,
    )


def entry_then_idle(days: int, entry_day: int = 0, score: float = 85.0) -> list[float]:
    """AI scores that qualify only on ``entry_day``."""
    return [score if day == entry_day else 50.0 for day in range(days)]


INLINE_STRATEGY_BLOCK = textwrap.dedent("""
    definition:
      id: test_strategy
      entry_conditions: {ai_score_min: 80}
      exit_conditions: {take_profit_pct: 30, stop_loss_pct: 15, max_hold_days: 7}
      position_sizing: {type: fixed_amount, value: 1000}
    """).strip()


def write_dataset(data_dir: Path) -> ParquetDataSource:
    """Seed a Parquet layout with one winning and one idle asset over ten days."""
    source = ParquetDataSource(data_dir)
    source.write_prices("tok", make_price_frame([100.0, 110.0] + [135.0] * 8))
    source.write_predictions("tok", make_prediction_frame(entry_then_idle(10)))
    source.write_prices("idle", make_price_frame([5.0] * 10))
    source.write_predictions("idle", make_prediction_frame([40.0] * 10))
    return source


def write_config(
    config_path: Path,
    data_dir: Path,
    artifacts_dir: Path,
    strategy_block: str | None = None,
    save_plot: bool = False,
) -> Path:
    """Write a run config over ``data_dir`` using the reference test strategy."""
    lines = [
        "data:",
        f"  data_dir: {data_dir}",
        "  start: \"2024-01-01\"",
        "  end: \"2024-01-10\"",
        "strategy:",
        textwrap.indent(strategy_block or INLINE_STRATEGY_BLOCK, "  "),
        "engine:",
        "  initial_capital: 10000",
        "  seed: 42",
        "output:",
        f"  artifacts_dir: {artifacts_dir}",
        f"  save_portfolio_plot: {str(save_plot).lower()}",
    ]
    config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return config_path
