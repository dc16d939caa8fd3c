"""Abstract interface for historical price/prediction data sources."""

from __future__ import annotations

from abc import ABC, abstractmethod

import pandas as pd

PRICE_COLUMNS: tuple[str, ...] = ("open", "high", "low", "close", "volume", "market_cap")
PREDICTION_NUMERIC_COLUMNS: tuple[str, ...] = (
    "ai_score",
    "confidence",
    "whale_activity",
    "social_sentiment",
)
PREDICTION_LABEL_COLUMNS: tuple[str, ...] = ("prediction_type", "rug_risk")
PREDICTION_COLUMNS: tuple[str, ...] = PREDICTION_NUMERIC_COLUMNS + PREDICTION_LABEL_COLUMNS


class HistoricalDataSource(ABC):
    """
    Read-only access to the historical data layer.

    Implementations must be safe for concurrent reads: several backtests may
    load from the same source at once.
    """

    @abstractmethod
    def get_asset_universe(self) -> set[str]:
        """
        Enumerate every asset the source knows about.

        Returns:
            Asset identifiers.
        """

    @abstractmethod
    def get_price_series(
        self,
        asset_id: str,
        start: pd.Timestamp,
        end: pd.Timestamp,
    ) -> pd.DataFrame:
        """
        Fetch daily price records for an asset over an inclusive time range.

        Args:
            asset_id: Asset identifier.
            start: Inclusive UTC start timestamp.
            end: Inclusive UTC end timestamp.

        Returns:
            A dataframe with UTC datetime index named ``timestamp`` and
            columns ``open``, ``high``, ``low``, ``close``, ``volume``,
            ``market_cap``.
        """

    @abstractmethod
    def get_prediction_series(
        self,
        asset_id: str,
        start: pd.Timestamp,
        end: pd.Timestamp,
    ) -> pd.DataFrame:
        """
        Fetch prediction records for an asset over an inclusive time range.

        Args:
            asset_id: Asset identifier.
            start: Inclusive UTC start timestamp.
            end: Inclusive UTC end timestamp.

        Returns:
            A dataframe with UTC datetime index named ``timestamp`` and
            columns ``ai_score``, ``confidence``, ``prediction_type``,
            ``rug_risk``, ``whale_activity``, ``social_sentiment``.
        """

    def get_symbol(self, asset_id: str) -> str:
        """Return a display symbol for an asset (defaults to the id)."""
        return asset_id
