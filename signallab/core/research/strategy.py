"""Strategy definitions, validation, and built-in templates."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from signallab.core.utils.errors import StrategyError

PredictionType = Literal["bullish", "bearish", "neutral"]
RugRisk = Literal["low", "medium", "high"]
SizingType = Literal["fixed_amount", "percentage", "kelly_criterion", "volatility_adjusted"]

RUG_RISK_ORDER: dict[str, int] = {"low": 1, "medium": 2, "high": 3}
DEFAULT_MAX_POSITIONS = 10


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class EntryConditions(_FrozenModel):
    """Threshold predicates on the prediction and price record of one day.

    Every field is optional; an unset field never blocks an entry.
    """

    ai_score_min: float | None = Field(default=None, ge=0, le=100)
    ai_score_max: float | None = Field(default=None, ge=0, le=100)
    prediction_type: PredictionType | None = None
    confidence_min: float | None = Field(default=None, ge=0, le=100)
    rug_risk_max: RugRisk | None = None
    whale_activity_min: float | None = None
    social_sentiment_min: float | None = None
    volume_min: float | None = Field(default=None, ge=0)
    market_cap_min: float | None = Field(default=None, ge=0)
    market_cap_max: float | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def validate_ranges(self) -> EntryConditions:
        """Reject empty min/max windows."""
        if (
            self.ai_score_min is not None
            and self.ai_score_max is not None
            and self.ai_score_min > self.ai_score_max
        ):
            raise ValueError("entry_conditions.ai_score_min must be <= ai_score_max.")
        if (
            self.market_cap_min is not None
            and self.market_cap_max is not None
            and self.market_cap_min > self.market_cap_max
        ):
            raise ValueError("entry_conditions.market_cap_min must be <= market_cap_max.")
        return self


class ExitConditions(_FrozenModel):
    """Exit thresholds. Percentages are expressed as whole numbers (30 == 30%)."""

    take_profit_pct: float | None = Field(default=None, gt=0)
    stop_loss_pct: float | None = Field(default=None, gt=0, le=100)
    max_hold_days: int | None = Field(default=None, gt=0)


class PositionSizing(_FrozenModel):
    """Position sizing policy."""

    type: SizingType = "fixed_amount"
    value: float = Field(default=1_000.0, ge=0)
    max_position_size: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_value(self) -> PositionSizing:
        """Percentages must stay within 0-100."""
        if self.type in {"percentage", "volatility_adjusted"} and self.value > 100:
            raise ValueError(f"position_sizing.value must be <= 100 for type '{self.type}'.")
        return self


class RiskManagement(_FrozenModel):
    """Portfolio-level risk limits."""

    max_positions: int = Field(default=DEFAULT_MAX_POSITIONS, ge=1)
    max_drawdown_limit: float | None = Field(default=None, gt=0, le=100)


class Strategy(_FrozenModel):
    """Immutable strategy definition replayed by the backtest engine."""

    id: str = Field(min_length=1)
    name: str = ""
    description: str = ""
    entry_conditions: EntryConditions = Field(default_factory=EntryConditions)
    exit_conditions: ExitConditions = Field(default_factory=ExitConditions)
    position_sizing: PositionSizing = Field(default_factory=PositionSizing)
    risk_management: RiskManagement = Field(default_factory=RiskManagement)

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        """Strip surrounding whitespace from the id."""
        strategy_id = value.strip()
        if not strategy_id:
            raise ValueError("strategy id must be non-empty.")
        return strategy_id

    @model_validator(mode="before")
    @classmethod
    def default_name(cls, data: Any) -> Any:
        """Default the display name to the id."""
        if isinstance(data, dict) and not str(data.get("name") or "").strip():
            return {**data, "name": str(data.get("id", "")).strip()}
        return data


_TEMPLATES: tuple[dict[str, Any], ...] = (
    {
        "id": "high_confidence_momentum",
        "name": "High Confidence Momentum",
        "description": "Buy tokens with high AI scores and bullish predictions",
        "entry_conditions": {
            "ai_score_min": 80,
            "prediction_type": "bullish",
            "confidence_min": 75,
            "rug_risk_max": "medium",
            "volume_min": 50_000,
        },
        "exit_conditions": {"take_profit_pct": 30, "stop_loss_pct": 15, "max_hold_days": 7},
        "position_sizing": {"type": "percentage", "value": 5, "max_position_size": 10_000},
        "risk_management": {"max_positions": 10, "max_drawdown_limit": 25},
    },
    {
        "id": "conservative_value",
        "name": "Conservative Value",
        "description": "Conservative approach focusing on lower risk tokens",
        "entry_conditions": {
            "ai_score_min": 60,
            "confidence_min": 60,
            "rug_risk_max": "low",
            "volume_min": 100_000,
            "market_cap_min": 1_000_000,
        },
        "exit_conditions": {"take_profit_pct": 20, "stop_loss_pct": 10, "max_hold_days": 14},
        "position_sizing": {"type": "percentage", "value": 3, "max_position_size": 5_000},
        "risk_management": {"max_positions": 15, "max_drawdown_limit": 15},
    },
)


def get_strategy_templates() -> list[Strategy]:
    """Return the built-in strategy templates."""
    return [Strategy.model_validate(payload) for payload in _TEMPLATES]


def get_strategy_template(template_id: str) -> Strategy:
    """
    Look up one built-in template by id.

    Raises:
        StrategyError: If the id is unknown.
    """
    for template in get_strategy_templates():
        if template.id == template_id.strip():
            return template
    known = ", ".join(sorted(payload["id"] for payload in _TEMPLATES))
    raise StrategyError(f"Unknown strategy template '{template_id}'. Known templates: {known}.")


def parse_strategy(payload: Any) -> Strategy:
    """
    Validate a raw mapping into a strategy.

    Raises:
        StrategyError: If validation fails.
    """
    if isinstance(payload, Strategy):
        return payload
    if not isinstance(payload, dict):
        raise StrategyError("Strategy definition must be a mapping/object.")
    try:
        return Strategy.model_validate(payload)
    except ValidationError as exc:
        raise StrategyError(f"Invalid strategy definition: {exc}") from exc


def load_strategy_file(path: Path) -> Strategy:
    """
    Load a strategy definition from a YAML file.

    Args:
        path: YAML file path.

    Returns:
        Validated strategy.
    """
    resolved_path = path.expanduser().resolve()
    if not resolved_path.is_file():
        raise StrategyError(f"Strategy file not found: {resolved_path}")
    try:
        with resolved_path.open("r", encoding="utf-8") as handle:
            raw_strategy: Any = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise StrategyError(f"Failed to read strategy file {resolved_path}: {exc}") from exc
    return parse_strategy(raw_strategy)
