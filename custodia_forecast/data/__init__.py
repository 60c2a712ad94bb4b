"""Historical series access and validation"""

from .store import (
    TimeSeriesStore,
    InMemoryTimeSeriesStore,
    CsvTimeSeriesStore,
    frame_to_periods,
    periods_to_frame
)
from .validators import SeriesValidator

__all__ = [
    'TimeSeriesStore',
    'InMemoryTimeSeriesStore',
    'CsvTimeSeriesStore',
    'SeriesValidator',
    'frame_to_periods',
    'periods_to_frame'
]
