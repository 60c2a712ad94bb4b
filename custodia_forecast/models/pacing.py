"""Current-period pacing: intra-month run rate blended with recent trend

Used while a month is still in progress. Three projections of the month
end are blended with weights that shift towards the observed run rate as
the month advances:

- linear trend over the most recent periods
- intra-month run rate (booked so far scaled to the full period)
- acceleration of the last value by the recent growth rate
"""

import numpy as np
from typing import Dict, Optional, Sequence, Tuple

from custodia_forecast.exceptions import InsufficientSamplesError, InvalidSeriesError
from custodia_forecast.models.base import fit_linear_trend, UNSCORABLE_MAPE
from custodia_forecast.schemas import HistoricalPeriod, PacingProjection, PacingSnapshot
from custodia_forecast.utils.config import ConfigLoader
from custodia_forecast.utils.logging_config import get_logger
from custodia_forecast.utils.metrics import calculate_mape


logger = get_logger(__name__)


class IntraMonthProjector:
    """Scale what has been booked so far to the full period"""

    def project(self, to_date: float, days_elapsed: int, days_in_period: int) -> float:
        return to_date / days_elapsed * days_in_period


class AccelerationEstimator:
    """
    Extrapolate the last value by the recent period-over-period growth

    forecast = last * (1 + growth * factor), with the factor equal to the
    growth rate clamped to [min_factor, max_factor].
    """

    def __init__(self, lookback: int = 3, min_factor: float = 0.1, max_factor: float = 0.5):
        self.lookback = lookback
        self.min_factor = min_factor
        self.max_factor = max_factor

    def growth_rate(self, values: Sequence[float]) -> float:
        """Mean relative change over the last `lookback` values"""
        recent = list(values)[-self.lookback:]
        changes = [
            (current - previous) / previous
            for previous, current in zip(recent, recent[1:])
            if previous > 0
        ]
        return float(np.mean(changes)) if changes else 0.0

    def estimate(self, values: Sequence[float]) -> Tuple[float, float, float]:
        """
        Returns:
            (forecast, growth rate, acceleration factor)
        """
        growth = self.growth_rate(values)
        factor = float(np.clip(growth, self.min_factor, self.max_factor))
        last = float(values[-1]) if len(values) else 0.0
        return last * (1 + growth * factor), growth, factor


class CurrentPeriodPacer:
    """
    Month-end projection for the period in flight

    Requires at least two closed periods of history.
    """

    min_samples = 2

    def __init__(self, config: Optional[ConfigLoader] = None):
        """
        Initialize pacer

        Args:
            config: Configuration loader instance
        """
        self.config = config if config else ConfigLoader()
        self.trend_window = self.config.get('pacing.trend_window', 6)
        self.change_point_window = self.config.get('pacing.change_point_window', 4)
        self.change_point_threshold = self.config.get('pacing.change_point_threshold', 0.20)
        self.divergence_threshold = self.config.get('pacing.divergence_threshold', 0.15)
        self.base_weights = self.config.get('pacing.base_weights', {
            'linear_trend': 0.5,
            'intra_month': 0.3,
            'acceleration': 0.2
        })

        self.projector = IntraMonthProjector()
        self.accelerator = AccelerationEstimator(
            lookback=self.config.get('pacing.growth_lookback', 3),
            min_factor=self.config.get('pacing.min_acceleration_factor', 0.1),
            max_factor=self.config.get('pacing.max_acceleration_factor', 0.5)
        )

    def detect_change_point(self, values: Sequence[float]) -> bool:
        """Recent window average more than threshold above the previous window"""
        window = self.change_point_window
        if len(values) < 2 * window:
            return False

        recent_avg = float(np.mean(values[-window:]))
        previous_avg = float(np.mean(values[-2 * window:-window]))

        if previous_avg <= 0:
            return False

        return (recent_avg - previous_avg) / previous_avg > self.change_point_threshold

    def _trend_projection(self, values: np.ndarray) -> Tuple[float, float]:
        """Next-step linear trend over the recent window, with its in-sample MAPE"""
        recent = values[-self.trend_window:]
        slope, intercept = fit_linear_trend(recent)
        fitted = slope * np.arange(len(recent)) + intercept

        mape = calculate_mape(recent, fitted)
        return slope * len(recent) + intercept, UNSCORABLE_MAPE if mape is None else mape

    def determine_weights(self, progress: float, change_point: bool) -> Dict[str, float]:
        """
        Blend weights for the three projections

        The run rate gains weight once half and three quarters of the period
        have elapsed; a change point favours the recent trend and acceleration.
        """
        weights = dict(self.base_weights)

        if progress > 0.5:
            weights['intra_month'] += 0.15
            weights['linear_trend'] -= 0.15

        if progress > 0.75:
            weights['intra_month'] += 0.10
            weights['linear_trend'] -= 0.10

        if change_point:
            weights['linear_trend'] += 0.15
            weights['acceleration'] += 0.10
            weights['intra_month'] -= 0.05

        total = sum(weights.values())
        return {name: weight / total for name, weight in weights.items()}

    def _blend(self, values: np.ndarray, to_date: float, snapshot: PacingSnapshot,
               weights: Dict[str, float]) -> Tuple[float, Dict[str, float], float, float]:
        trend, trend_mape = self._trend_projection(values)
        run_rate = self.projector.project(to_date, snapshot.days_elapsed, snapshot.days_in_period)
        acceleration, growth, _ = self.accelerator.estimate(values)

        components = {
            'linear_trend': float(trend),
            'intra_month': float(run_rate),
            'acceleration': float(acceleration)
        }
        blended = sum(components[name] * weights[name] for name in components)

        # Never project below what is already booked
        return max(float(to_date), blended, 0.0), components, growth, trend_mape

    def _confidence(self, trend_mape: float, growth: float, progress: float,
                    weights: Dict[str, float]) -> float:
        confidence = max(0.3, 1 - trend_mape / 100)

        if abs(growth) < 0.1:
            confidence += 0.1

        confidence += progress * 0.2
        confidence += (1 - max(weights.values())) * 0.1

        return float(min(0.95, max(0.4, confidence)))

    def project(
        self,
        periods: Sequence[HistoricalPeriod],
        snapshot: PacingSnapshot
    ) -> PacingProjection:
        """
        Project the month end of the period in flight

        Args:
            periods: Closed historical periods, oldest first
            snapshot: Progress of the current period

        Returns:
            PacingProjection
        """
        if len(periods) < self.min_samples:
            raise InsufficientSamplesError('CurrentPeriodPacer', self.min_samples, len(periods))

        self._check_snapshot(snapshot)

        services = np.array([p.service_count for p in periods], dtype=float)
        gmv = np.array([p.gmv for p in periods], dtype=float)

        change_point = self.detect_change_point(services)
        weights = self.determine_weights(snapshot.progress, change_point)

        projected_services, components, growth, trend_mape = self._blend(
            services, snapshot.services_to_date, snapshot, weights
        )
        projected_gmv, _, _, _ = self._blend(gmv, snapshot.gmv_to_date, snapshot, weights)

        run_rate = components['intra_month']
        divergence = (
            run_rate > 0 and
            abs(projected_services - run_rate) / run_rate > self.divergence_threshold
        )

        logger.info(
            f"Pacing projection: {projected_services:,.0f} services "
            f"({snapshot.progress:.0%} of period elapsed)"
        )
        if divergence:
            logger.warning(
                f"Blended projection diverges from run rate {run_rate:,.0f} "
                f"by more than {self.divergence_threshold:.0%}"
            )

        return PacingProjection(
            projected_services=projected_services,
            projected_gmv=projected_gmv,
            confidence=self._confidence(trend_mape, growth, snapshot.progress, weights),
            components=components,
            weights=weights,
            change_point_detected=change_point,
            recent_growth_rate=growth,
            divergence_alert=bool(divergence)
        )

    @staticmethod
    def _check_snapshot(snapshot: PacingSnapshot):
        if snapshot.days_elapsed < 1:
            raise InvalidSeriesError("days_elapsed must be at least 1")
        if snapshot.days_in_period < snapshot.days_elapsed:
            raise InvalidSeriesError("days_elapsed exceeds days_in_period")
        if snapshot.services_to_date < 0 or snapshot.gmv_to_date < 0:
            raise InvalidSeriesError("current-period totals must be non-negative")
