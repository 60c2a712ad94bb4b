"""Input contract checks for historical series"""

import math
from typing import List, Optional, Sequence

from custodia_forecast.exceptions import InvalidSeriesError
from custodia_forecast.schemas import HistoricalPeriod
from custodia_forecast.utils.config import ConfigLoader
from custodia_forecast.utils.logging_config import get_logger


logger = get_logger(__name__)


GAP_POLICIES = ('warn', 'reject', 'zero_fill')


class SeriesValidator:
    """
    Validate a historical window before any model runs

    Checks:
    - Series is not empty
    - Counts and values are finite and non-negative
    - period_index is strictly increasing (chronological order)
    - Gaps in period_index are handled according to the gap policy
    """

    def __init__(self, config: Optional[ConfigLoader] = None, gap_policy: str = None):
        """
        Initialize validator

        Args:
            config: Configuration loader instance
            gap_policy: Overrides forecasting.gap_policy ('warn', 'reject', 'zero_fill')
        """
        self.config = config if config else ConfigLoader()
        self.gap_policy = gap_policy or self.config.get('forecasting.gap_policy', 'warn')

        if self.gap_policy not in GAP_POLICIES:
            raise ValueError(
                f"Unknown gap policy '{self.gap_policy}', expected one of {GAP_POLICIES}"
            )

    def validate(self, periods: Sequence[HistoricalPeriod]) -> List[HistoricalPeriod]:
        """
        Validate a window and apply the gap policy

        Args:
            periods: Historical periods, oldest first

        Returns:
            Validated periods (zero-filled if the policy says so)

        Raises:
            InvalidSeriesError: If the window violates the input contract
        """
        periods = list(periods)

        if not periods:
            raise InvalidSeriesError("series is empty")

        for period in periods:
            self._check_values(period)

        gaps = self._find_gaps(periods)

        if not gaps:
            return periods

        missing = sum(size for _, size in gaps)

        if self.gap_policy == 'reject':
            raise InvalidSeriesError(
                f"{missing} missing period(s) after index(es) {[idx for idx, _ in gaps]}"
            )

        if self.gap_policy == 'zero_fill':
            logger.warning(f"Zero-filling {missing} missing period(s)")
            return self._zero_fill(periods)

        logger.warning(
            f"Series has {missing} missing period(s) after index(es) "
            f"{[idx for idx, _ in gaps]}; treating it as contiguous"
        )
        return periods

    def _check_values(self, period: HistoricalPeriod):
        label = period.period_label

        if not math.isfinite(period.service_count) or not math.isfinite(period.gmv):
            raise InvalidSeriesError(f"non-finite value in period '{label}'")

        if period.service_count < 0:
            raise InvalidSeriesError(
                f"negative service count {period.service_count} in period '{label}'"
            )

        if period.gmv < 0:
            raise InvalidSeriesError(f"negative GMV {period.gmv} in period '{label}'")

    def _find_gaps(self, periods: List[HistoricalPeriod]) -> List[tuple]:
        """Return (index before gap, number of missing periods) pairs"""
        gaps = []

        for previous, current in zip(periods, periods[1:]):
            step = current.period_index - previous.period_index

            if step <= 0:
                raise InvalidSeriesError(
                    f"period_index not increasing: {previous.period_index} "
                    f"followed by {current.period_index}"
                )

            if step > 1:
                gaps.append((previous.period_index, step - 1))

        return gaps

    @staticmethod
    def _zero_fill(periods: List[HistoricalPeriod]) -> List[HistoricalPeriod]:
        filled = [periods[0]]

        for current in periods[1:]:
            for missing_index in range(filled[-1].period_index + 1, current.period_index):
                filled.append(HistoricalPeriod(
                    period_index=missing_index,
                    period_label=f"gap-{missing_index}",
                    service_count=0,
                    gmv=0.0
                ))
            filled.append(current)

        return filled
