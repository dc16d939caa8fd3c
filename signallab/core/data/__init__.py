"""Historical data access interfaces."""

from signallab.core.data.base import HistoricalDataSource
from signallab.core.data.loader import HistoricalDataLoader, period_bounds
from signallab.core.data.memory import InMemoryDataSource
from signallab.core.data.parquet_store import ParquetDataSource
from signallab.core.data.series import AssetSeries, to_utc_timestamp

__all__ = [
    "AssetSeries",
    "HistoricalDataLoader",
    "HistoricalDataSource",
    "InMemoryDataSource",
    "ParquetDataSource",
    "period_bounds",
    "to_utc_timestamp",
]
