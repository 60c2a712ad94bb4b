"""ARIMA-like auto-regressive model on first differences"""

import numpy as np
from typing import Optional

from custodia_forecast.models.base import BaseComponentModel, SeriesFit
from custodia_forecast.schemas import TrendDirection
from custodia_forecast.utils.config import ConfigLoader


def lag_autocorrelation(values: np.ndarray, lag: int = 1) -> float:
    """Sample autocorrelation at `lag`, 0 for a constant series"""
    mean = np.mean(values)
    deviations = values - mean
    denominator = float(np.sum(deviations ** 2))

    if denominator == 0:
        return 0.0

    numerator = float(np.sum(deviations[lag:] * deviations[:-lag]))
    return numerator / denominator


class AutoRegressiveDifferencer(BaseComponentModel):
    """
    One-step forecast from the differenced series

    With d the first differences, phi the lag-1 autocorrelation of d and
    theta the mean of the AR residuals d[t] - phi * d[t-1]:

        forecast = last + phi * d[-1] + theta * (d[-1] - phi * d[-2])

    Self-confidence comes from one-step-ahead residuals of the same
    recursion over the observed series.
    """

    min_samples = 4

    def __init__(self, config: Optional[ConfigLoader] = None):
        super().__init__(model_name='AutoRegressiveDifferencer', config=config)
        self.base_confidence = self.config.get('models.autoregressive.base_confidence', 0.9)
        self.min_confidence = self.config.get('models.autoregressive.min_confidence', 0.6)

    @staticmethod
    def _step(last: float, diff: float, previous_diff: float, phi: float, theta: float) -> float:
        return last + phi * diff + theta * (diff - phi * previous_diff)

    def _fit_series(self, values: np.ndarray) -> SeriesFit:
        diffs = np.diff(values)

        phi = lag_autocorrelation(diffs, 1)
        theta = float(np.mean(diffs[1:] - phi * diffs[:-1]))

        forecast = self._step(values[-1], diffs[-1], diffs[-2], phi, theta)

        # One-step-ahead predictions for every period with two prior differences
        actuals = values[3:]
        predicted = np.array([
            self._step(values[t - 1], diffs[t - 2], diffs[t - 3], phi, theta)
            for t in range(3, len(values))
        ])
        mape = self._self_mape(actuals, predicted)

        confidence = max(self.min_confidence, self.base_confidence - mape / 100)

        return SeriesFit(
            value=float(forecast),
            confidence=float(confidence),
            estimated_mape=mape,
            trend_direction=TrendDirection.from_delta(forecast - values[-1]),
            seasonality_amplitude=0.0,
            parameters={
                'phi': phi,
                'theta': theta,
                'differencing': 1
            }
        )
