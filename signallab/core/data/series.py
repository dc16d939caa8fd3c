"""Normalized per-asset price and prediction series."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import pandas as pd

from signallab.core.data.base import (
    PREDICTION_COLUMNS,
    PREDICTION_LABEL_COLUMNS,
    PREDICTION_NUMERIC_COLUMNS,
    PRICE_COLUMNS,
)
from signallab.core.utils.errors import DataValidationError

DateLike = str | date | datetime | pd.Timestamp
DEFAULT_MATCH_TOLERANCE = pd.Timedelta(hours=24)
_TIMESTAMP_COLUMNS: tuple[str, ...] = ("timestamp", "date", "prediction_time")


def to_utc_timestamp(value: DateLike) -> pd.Timestamp:
    """Convert a date-like value to a UTC timestamp."""
    try:
        timestamp = pd.Timestamp(value)
    except (TypeError, ValueError) as exc:
        raise DataValidationError(f"Invalid date value: {value!r}") from exc
    if pd.isna(timestamp):
        raise DataValidationError(f"Invalid date value: {value!r}")
    if timestamp.tzinfo is None:
        return timestamp.tz_localize("UTC")
    return timestamp.tz_convert("UTC")


def _empty_frame(columns: tuple[str, ...]) -> pd.DataFrame:
    """Create an empty dataframe with a UTC datetime index."""
    empty_index = pd.DatetimeIndex([], tz="UTC", name="timestamp")
    return pd.DataFrame(columns=list(columns), index=empty_index)


def _with_utc_index(frame: pd.DataFrame, kind: str) -> pd.DataFrame:
    """Move the timestamp column (if any) into a sorted, de-duplicated UTC index."""
    normalized = frame.copy()
    timestamp_column = next(
        (column for column in _TIMESTAMP_COLUMNS if column in normalized.columns), None
    )
    if timestamp_column is not None:
        normalized[timestamp_column] = pd.to_datetime(
            normalized[timestamp_column], utc=True, errors="coerce"
        )
        normalized = normalized.set_index(timestamp_column)
    elif isinstance(normalized.index, pd.DatetimeIndex):
        normalized.index = pd.to_datetime(normalized.index, utc=True, errors="coerce")
    else:
        raise DataValidationError(
            f"{kind} dataframe must have a DatetimeIndex or a 'timestamp' column."
        )

    normalized = normalized.loc[~normalized.index.isna()]
    normalized.index.name = "timestamp"
    normalized = normalized.sort_index()
    return normalized.loc[~normalized.index.duplicated(keep="last")].copy()


def normalize_price_frame(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize raw price records to the engine's price schema.

    Rows without a close are dropped; missing open/high/low fall back to the
    close and missing volume/market cap to zero.
    """
    if frame.empty:
        return _empty_frame(PRICE_COLUMNS).astype(float)

    normalized = _with_utc_index(frame, "Price")
    if "close" not in normalized.columns:
        raise DataValidationError("Price dataframe is missing required column 'close'.")

    for column in PRICE_COLUMNS:
        if column not in normalized.columns:
            normalized[column] = pd.NA
        normalized[column] = pd.to_numeric(normalized[column], errors="coerce")

    normalized = normalized.dropna(subset=["close"]).copy()
    for column in ("open", "high", "low"):
        normalized[column] = normalized[column].fillna(normalized["close"])
    normalized[["volume", "market_cap"]] = normalized[["volume", "market_cap"]].fillna(0.0)
    normalized = normalized.loc[:, list(PRICE_COLUMNS)].astype(float)

    if normalized.empty:
        return _empty_frame(PRICE_COLUMNS).astype(float)
    return normalized


def normalize_prediction_frame(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize raw prediction records to the engine's prediction schema.

    Rows without an AI score or confidence are dropped. Labels are
    lower-cased; unknown labels become missing.
    """
    if frame.empty:
        return _empty_frame(PREDICTION_COLUMNS)

    normalized = _with_utc_index(frame, "Prediction")
    missing = [column for column in ("ai_score", "confidence") if column not in normalized.columns]
    if missing:
        raise DataValidationError(f"Prediction dataframe is missing required columns: {missing}")

    for column in PREDICTION_NUMERIC_COLUMNS:
        if column not in normalized.columns:
            normalized[column] = pd.NA
        normalized[column] = pd.to_numeric(normalized[column], errors="coerce").astype(float)
    normalized = normalized.dropna(subset=["ai_score", "confidence"]).copy()
    normalized[["whale_activity", "social_sentiment"]] = normalized[
        ["whale_activity", "social_sentiment"]
    ].fillna(0.0)

    allowed_labels = {
        "prediction_type": {"bullish", "bearish", "neutral"},
        "rug_risk": {"low", "medium", "high"},
    }
    for column in PREDICTION_LABEL_COLUMNS:
        if column in normalized.columns:
            raw_labels = list(normalized[column])
        else:
            raw_labels = [None] * len(normalized)
        normalized[column] = pd.Series(
            [_clean_label(value, allowed_labels[column]) for value in raw_labels],
            index=normalized.index,
            dtype=object,
        )

    normalized = normalized.loc[:, list(PREDICTION_COLUMNS)]
    if normalized.empty:
        return _empty_frame(PREDICTION_COLUMNS)
    return normalized


def _clean_label(value: Any, allowed: set[str]) -> str | None:
    """Lower-case a label, mapping unknown or missing values to ``None``."""
    if not isinstance(value, str):
        return None
    label = value.strip().lower()
    return label if label in allowed else None


def slice_frame(frame: pd.DataFrame, start: pd.Timestamp, end: pd.Timestamp) -> pd.DataFrame:
    """Return the rows of a UTC-indexed frame within ``[start, end]``."""
    return frame.loc[(frame.index >= start) & (frame.index <= end)]


def _nearest_row(
    frame: pd.DataFrame,
    timestamp: pd.Timestamp,
    tolerance: pd.Timedelta,
) -> pd.Series | None:
    """
    Return the row nearest ``timestamp`` strictly within ``tolerance``.

    Equidistant records resolve to the earlier one, so a day never reads a
    value stamped later than an equally close earlier record.
    """
    if frame.empty:
        return None
    index = frame.index
    after = int(index.searchsorted(timestamp, side="left"))
    candidates = [position for position in (after - 1, after) if 0 <= position < len(index)]
    position = min(candidates, key=lambda candidate: abs(index[candidate] - timestamp))
    if abs(index[position] - timestamp) >= tolerance:
        return None
    return frame.iloc[position]


@dataclass(frozen=True)
class AssetSeries:
    """Read-only price and prediction history of one asset."""

    asset_id: str
    prices: pd.DataFrame
    predictions: pd.DataFrame
    symbol: str | None = None

    @property
    def display_symbol(self) -> str:
        """Symbol if known, else the asset id."""
        return self.symbol or self.asset_id

    @property
    def is_empty(self) -> bool:
        """Whether the asset has neither prices nor predictions."""
        return self.prices.empty and self.predictions.empty

    def price_near(
        self,
        timestamp: pd.Timestamp,
        tolerance: pd.Timedelta = DEFAULT_MATCH_TOLERANCE,
    ) -> pd.Series | None:
        """Price record nearest ``timestamp``, or ``None`` when none is close enough."""
        return _nearest_row(self.prices, timestamp, tolerance)

    def prediction_near(
        self,
        timestamp: pd.Timestamp,
        tolerance: pd.Timedelta = DEFAULT_MATCH_TOLERANCE,
    ) -> pd.Series | None:
        """Prediction record nearest ``timestamp``, or ``None``."""
        return _nearest_row(self.predictions, timestamp, tolerance)

    def close_near(
        self,
        timestamp: pd.Timestamp,
        tolerance: pd.Timedelta = DEFAULT_MATCH_TOLERANCE,
    ) -> float | None:
        """Close price nearest ``timestamp``, or ``None``."""
        record = self.price_near(timestamp, tolerance)
        if record is None:
            return None
        return float(record["close"])


def record_to_dict(record: pd.Series | None) -> dict[str, Any]:
    """Convert a record row to a plain JSON-ready mapping."""
    if record is None:
        return {}
    payload: dict[str, Any] = {}
    for key, value in record.items():
        if value is None or (not isinstance(value, str) and pd.isna(value)):
            payload[str(key)] = None
        elif isinstance(value, str):
            payload[str(key)] = value
        else:
            payload[str(key)] = float(value)
    return payload
