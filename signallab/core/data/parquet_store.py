"""Read-only Parquet directory data source."""

from __future__ import annotations

import re
from pathlib import Path

import pandas as pd

from signallab.core.data.base import HistoricalDataSource
from signallab.core.data.series import (
    normalize_prediction_frame,
    normalize_price_frame,
    slice_frame,
)
from signallab.core.utils.errors import (
    DataUnavailableError,
    DataValidationError,
    InsufficientDataError,
)

PRICES_SUBDIR = "prices"
PREDICTIONS_SUBDIR = "predictions"
SYMBOLS_FILENAME = "symbols.parquet"
_ASSET_SANITIZE_PATTERN = re.compile(r"[^A-Za-z0-9_.-]+")


def _sanitize_asset_id(asset_id: str) -> str:
    """Sanitize asset ids so they are safe as filenames."""
    clean_id = _ASSET_SANITIZE_PATTERN.sub("_", asset_id.strip())
    if not clean_id:
        raise ValueError("Asset id cannot be empty.")
    return clean_id


class ParquetDataSource(HistoricalDataSource):
    """
    Serve historical records from a directory of per-asset Parquet files.

    Layout::

        <data_dir>/prices/<asset_id>.parquet
        <data_dir>/predictions/<asset_id>.parquet
        <data_dir>/symbols.parquet          (optional: asset_id, symbol)

    Files are only read, never written, during a backtest; the ``write_*``
    helpers exist to seed a directory.
    """

    def __init__(self, data_dir: Path) -> None:
        """
        Initialize a directory-backed source.

        Args:
            data_dir: Root directory of the Parquet layout.
        """
        self.data_dir = data_dir.expanduser().resolve()

    def asset_path(self, kind: str, asset_id: str) -> Path:
        """
        Build the Parquet path for one asset.

        Args:
            kind: ``prices`` or ``predictions``.
            asset_id: Asset identifier.

        Returns:
            File path (which may not exist).
        """
        return self.data_dir / kind / f"{_sanitize_asset_id(asset_id)}.parquet"

    def get_asset_universe(self) -> set[str]:
        if not self.data_dir.is_dir():
            raise DataUnavailableError(f"Data directory not found: {self.data_dir}")
        universe: set[str] = set()
        for kind in (PRICES_SUBDIR, PREDICTIONS_SUBDIR):
            kind_dir = self.data_dir / kind
            if kind_dir.is_dir():
                universe.update(path.stem for path in kind_dir.glob("*.parquet"))
        return universe

    def _read(self, path: Path) -> pd.DataFrame | None:
        if not path.exists():
            return None
        try:
            return pd.read_parquet(path, engine="pyarrow")
        except Exception as exc:
            raise DataValidationError(f"Failed to read {path}: {exc}") from exc

    def _read_existing(self, kind: str, asset_id: str) -> pd.DataFrame | None:
        price_path = self.asset_path(PRICES_SUBDIR, asset_id)
        prediction_path = self.asset_path(PREDICTIONS_SUBDIR, asset_id)
        if not price_path.exists() and not prediction_path.exists():
            raise InsufficientDataError(f"No Parquet files found for asset '{asset_id}'.")
        return self._read(self.asset_path(kind, asset_id))

    def get_price_series(
        self,
        asset_id: str,
        start: pd.Timestamp,
        end: pd.Timestamp,
    ) -> pd.DataFrame:
        raw = self._read_existing(PRICES_SUBDIR, asset_id)
        frame = normalize_price_frame(raw if raw is not None else pd.DataFrame())
        return slice_frame(frame, start, end)

    def get_prediction_series(
        self,
        asset_id: str,
        start: pd.Timestamp,
        end: pd.Timestamp,
    ) -> pd.DataFrame:
        raw = self._read_existing(PREDICTIONS_SUBDIR, asset_id)
        frame = normalize_prediction_frame(raw if raw is not None else pd.DataFrame())
        return slice_frame(frame, start, end)

    def get_symbol(self, asset_id: str) -> str:
        symbols = self._read(self.data_dir / SYMBOLS_FILENAME)
        if symbols is None or not {"asset_id", "symbol"} <= set(symbols.columns):
            return asset_id
        matches = symbols.loc[symbols["asset_id"] == asset_id, "symbol"]
        if matches.empty:
            return asset_id
        return str(matches.iloc[0])

    def write_prices(self, asset_id: str, frame: pd.DataFrame) -> Path:
        """Normalize and write one asset's price records."""
        return self._write(PRICES_SUBDIR, asset_id, normalize_price_frame(frame))

    def write_predictions(self, asset_id: str, frame: pd.DataFrame) -> Path:
        """Normalize and write one asset's prediction records."""
        return self._write(PREDICTIONS_SUBDIR, asset_id, normalize_prediction_frame(frame))

    def _write(self, kind: str, asset_id: str, frame: pd.DataFrame) -> Path:
        path = self.asset_path(kind, asset_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            frame.to_parquet(path, engine="pyarrow", index=True)
        except Exception as exc:
            raise DataValidationError(
                f"Failed to write {kind} for asset '{asset_id}' at {path}: {exc}"
            ) from exc
        return path
