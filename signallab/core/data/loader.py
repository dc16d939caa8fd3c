"""Historical data loader: assemble per-asset series for a backtest period."""

from __future__ import annotations

from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

import pandas as pd

from signallab.core.data.base import HistoricalDataSource
from signallab.core.data.series import (
    AssetSeries,
    DateLike,
    normalize_prediction_frame,
    normalize_price_frame,
    slice_frame,
    to_utc_timestamp,
)
from signallab.core.utils.errors import DataUnavailableError, InsufficientDataError
from signallab.core.utils.logging import get_logger

_LOGGER = get_logger(__name__)


def period_bounds(start: DateLike, end: DateLike) -> tuple[pd.Timestamp, pd.Timestamp]:
    """
    Resolve an inclusive day range to UTC timestamp bounds.

    The end bound covers the whole end day.
    """
    start_ts = to_utc_timestamp(start).normalize()
    end_ts = to_utc_timestamp(end).normalize() + pd.Timedelta(days=1) - pd.Timedelta(1, "ns")
    return start_ts, end_ts


class HistoricalDataLoader:
    """Load price and prediction series for every asset in a source's universe."""

    def __init__(
        self,
        source: HistoricalDataSource,
        assets: Iterable[str] | None = None,
        max_workers: int = 1,
    ) -> None:
        """
        Initialize a loader.

        Args:
            source: Read-only historical data source.
            assets: Optional subset of the universe to load.
            max_workers: Thread count used to read assets concurrently.
        """
        self.source = source
        self.assets = None if assets is None else sorted({asset.strip() for asset in assets})
        self.max_workers = max(1, int(max_workers))

    def _universe(self) -> list[str]:
        try:
            universe = set(self.source.get_asset_universe())
        except DataUnavailableError:
            raise
        except Exception as exc:
            raise DataUnavailableError(f"Unable to enumerate asset universe: {exc}") from exc

        if self.assets is not None:
            unknown = sorted(set(self.assets) - universe)
            if unknown:
                _LOGGER.warning("Ignoring assets missing from the universe: %s", unknown)
            universe &= set(self.assets)
        if not universe:
            raise DataUnavailableError("Asset universe is empty.")
        return sorted(universe)

    def _load_asset(
        self,
        asset_id: str,
        start: pd.Timestamp,
        end: pd.Timestamp,
    ) -> AssetSeries | None:
        try:
            prices = self.source.get_price_series(asset_id, start, end)
            predictions = self.source.get_prediction_series(asset_id, start, end)
        except InsufficientDataError as exc:
            _LOGGER.warning("Skipping asset %s: %s", asset_id, exc)
            return None

        series = AssetSeries(
            asset_id=asset_id,
            prices=slice_frame(normalize_price_frame(prices), start, end),
            predictions=slice_frame(normalize_prediction_frame(predictions), start, end),
            symbol=self.source.get_symbol(asset_id),
        )
        if series.is_empty:
            _LOGGER.debug("Asset %s has no records in range", asset_id)
            return None
        return series

    def load(self, start: DateLike, end: DateLike) -> dict[str, AssetSeries]:
        """
        Load every asset with at least one record in ``[start, end]``.

        Args:
            start: Inclusive start day.
            end: Inclusive end day.

        Returns:
            Mapping of asset id to series, in sorted id order.

        Raises:
            DataUnavailableError: If the universe cannot be enumerated or no
                asset has data in the period.
        """
        start_ts, end_ts = period_bounds(start, end)
        asset_ids = self._universe()
        _LOGGER.info(
            "Loading %d assets from %s to %s",
            len(asset_ids),
            start_ts.date().isoformat(),
            end_ts.date().isoformat(),
        )

        if self.max_workers > 1 and len(asset_ids) > 1:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="signallab-load"
            ) as executor:
                loaded = list(
                    executor.map(
                        lambda asset_id: self._load_asset(asset_id, start_ts, end_ts),
                        asset_ids,
                    )
                )
        else:
            loaded = [self._load_asset(asset_id, start_ts, end_ts) for asset_id in asset_ids]

        data_by_asset = {series.asset_id: series for series in loaded if series is not None}
        if not data_by_asset:
            raise DataUnavailableError(
                "No historical data available between "
                f"{start_ts.date().isoformat()} and {end_ts.date().isoformat()}."
            )
        return data_by_asset
