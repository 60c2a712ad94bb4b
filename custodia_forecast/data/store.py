"""Time series stores supplying monthly aggregates to the engine

The store is the I/O boundary of the engine: a window is fetched before
the numeric pipeline runs, and the pipeline itself never touches storage.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from custodia_forecast.exceptions import InvalidSeriesError
from custodia_forecast.schemas import HistoricalPeriod
from custodia_forecast.utils.logging_config import get_logger


logger = get_logger(__name__)


REQUIRED_COLUMNS = ['period_index', 'period_label', 'service_count', 'gmv']


def frame_to_periods(df: pd.DataFrame) -> List[HistoricalPeriod]:
    """
    Convert a DataFrame of monthly aggregates into HistoricalPeriod records

    Row order is preserved; ordering is checked later by the validator.

    Args:
        df: DataFrame with period_index, period_label, service_count, gmv

    Returns:
        List of HistoricalPeriod in row order

    Raises:
        InvalidSeriesError: If a cell is blank, a numeric column holds
            text, or a count is not a whole number
    """
    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    if df.empty:
        return []

    df = df[REQUIRED_COLUMNS].copy()

    blank = df.isna().any(axis=1)
    if blank.any():
        row = blank.idxmax()
        columns = [col for col in REQUIRED_COLUMNS if pd.isna(df.at[row, col])]
        raise InvalidSeriesError(f"row {row} has missing value(s) in {columns}")

    for col in ('period_index', 'service_count', 'gmv'):
        numeric = pd.to_numeric(df[col], errors='coerce')
        if numeric.isna().any():
            row = numeric.isna().idxmax()
            raise InvalidSeriesError(f"row {row}: {col} is not numeric, got {df.at[row, col]!r}")
        df[col] = numeric

    for col in ('period_index', 'service_count'):
        whole = np.isfinite(df[col]) & (df[col] == df[col].round())
        if not whole.all():
            row = (~whole).idxmax()
            raise InvalidSeriesError(
                f"row {row}: {col} must be a whole number, got {df.at[row, col]!r}"
            )

    return [
        HistoricalPeriod(
            period_index=int(row.period_index),
            period_label=str(row.period_label),
            service_count=int(row.service_count),
            gmv=float(row.gmv)
        )
        for row in df.itertuples(index=False)
    ]


def periods_to_frame(periods: Iterable[HistoricalPeriod]) -> pd.DataFrame:
    """Inverse of frame_to_periods"""
    return pd.DataFrame(
        [
            {
                'period_index': p.period_index,
                'period_label': p.period_label,
                'service_count': p.service_count,
                'gmv': p.gmv
            }
            for p in periods
        ],
        columns=REQUIRED_COLUMNS
    )


class TimeSeriesStore(ABC):
    """
    Source of chronologically ordered monthly aggregates

    Implementations must return periods oldest first.
    """

    @abstractmethod
    def fetch_window(self, lookback: Optional[int] = None) -> List[HistoricalPeriod]:
        """
        Fetch the trailing window of periods

        Args:
            lookback: Number of most recent periods (None = all)

        Returns:
            List of HistoricalPeriod, oldest first
        """
        pass


class InMemoryTimeSeriesStore(TimeSeriesStore):
    """Store backed by a list held in memory"""

    def __init__(self, periods: Iterable[HistoricalPeriod] = ()):
        self._periods = list(periods)

    def append(self, period: HistoricalPeriod):
        self._periods.append(period)

    def fetch_window(self, lookback: Optional[int] = None) -> List[HistoricalPeriod]:
        if lookback is None or lookback >= len(self._periods):
            return list(self._periods)
        if lookback <= 0:
            return []
        return list(self._periods[-lookback:])

    def __len__(self) -> int:
        return len(self._periods)


class CsvTimeSeriesStore(TimeSeriesStore):
    """
    Store reading monthly aggregates from a CSV export

    Expected columns: period_index, period_label, service_count, gmv.
    The file is re-read on every fetch so the window always reflects the
    latest export.
    """

    def __init__(self, csv_path: str):
        self.csv_path = Path(csv_path)

    def _load(self) -> pd.DataFrame:
        if not self.csv_path.exists():
            raise FileNotFoundError(f"Time series file not found: {self.csv_path}")

        df = pd.read_csv(self.csv_path)
        logger.info(f"Loaded {len(df)} periods from {self.csv_path.name}")
        return df

    def fetch_window(self, lookback: Optional[int] = None) -> List[HistoricalPeriod]:
        df = self._load()

        if lookback is not None:
            df = df.tail(lookback) if lookback > 0 else df.iloc[0:0]

        return frame_to_periods(df)

    def __repr__(self) -> str:
        return f"CsvTimeSeriesStore(csv_path='{self.csv_path}')"
