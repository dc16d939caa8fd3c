"""In-memory historical data source."""

from __future__ import annotations

from collections.abc import Mapping

import pandas as pd

from signallab.core.data.base import HistoricalDataSource
from signallab.core.data.series import (
    normalize_prediction_frame,
    normalize_price_frame,
    slice_frame,
)
from signallab.core.utils.errors import InsufficientDataError


class InMemoryDataSource(HistoricalDataSource):
    """Serve normalized frames held in memory.

    Frames are normalized once at construction and never mutated afterwards,
    so concurrent readers need no locking.
    """

    def __init__(
        self,
        prices: Mapping[str, pd.DataFrame],
        predictions: Mapping[str, pd.DataFrame] | None = None,
        symbols: Mapping[str, str] | None = None,
    ) -> None:
        prediction_frames = dict(predictions or {})
        self._prices = {
            asset_id: normalize_price_frame(frame) for asset_id, frame in prices.items()
        }
        self._predictions = {
            asset_id: normalize_prediction_frame(frame)
            for asset_id, frame in prediction_frames.items()
        }
        self._symbols = dict(symbols or {})

    def get_asset_universe(self) -> set[str]:
        return set(self._prices) | set(self._predictions)

    def _require_known(self, asset_id: str) -> None:
        if asset_id not in self._prices and asset_id not in self._predictions:
            raise InsufficientDataError(f"No records held for asset '{asset_id}'.")

    def get_price_series(
        self,
        asset_id: str,
        start: pd.Timestamp,
        end: pd.Timestamp,
    ) -> pd.DataFrame:
        self._require_known(asset_id)
        frame = self._prices.get(asset_id)
        if frame is None:
            return normalize_price_frame(pd.DataFrame())
        return slice_frame(frame, start, end).copy()

    def get_prediction_series(
        self,
        asset_id: str,
        start: pd.Timestamp,
        end: pd.Timestamp,
    ) -> pd.DataFrame:
        self._require_known(asset_id)
        frame = self._predictions.get(asset_id)
        if frame is None:
            return normalize_prediction_frame(pd.DataFrame())
        return slice_frame(frame, start, end).copy()

    def get_symbol(self, asset_id: str) -> str:
        return self._symbols.get(asset_id, asset_id)
