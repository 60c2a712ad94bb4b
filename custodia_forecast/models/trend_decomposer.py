"""Trend + seasonality decomposition model"""

import numpy as np
from typing import Optional

from custodia_forecast.models.base import (
    BaseComponentModel,
    SeriesFit,
    fit_linear_trend,
    fourier_seasonality
)
from custodia_forecast.schemas import TrendDirection
from custodia_forecast.utils.config import ConfigLoader


class TrendDecomposer(BaseComponentModel):
    """
    Linear trend plus Fourier seasonality plus recent growth

    Forecast for the next index n:
        trend(n) + seasonal(n mod period) + growth

    - trend: OLS line of value on period index
    - seasonal: first harmonics of a Fourier fit on the detrended series,
      over an assumed annual cycle
    - growth: mean of the last 3 periods minus mean of the 3 before
    """

    min_samples = 6

    def __init__(self, config: Optional[ConfigLoader] = None):
        super().__init__(model_name='TrendDecomposer', config=config)
        self.growth_window = self.config.get('models.trend_decomposer.growth_window', 3)
        self.min_confidence = self.config.get('models.trend_decomposer.min_confidence', 0.5)
        self.max_confidence = self.config.get('models.trend_decomposer.max_confidence', 0.95)

    def _recent_growth(self, values: np.ndarray) -> float:
        window = self.growth_window
        if len(values) < 2 * window:
            return 0.0
        recent = values[-window:]
        prior = values[-2 * window:-window]
        return float(np.mean(recent) - np.mean(prior))

    def _fit_series(self, values: np.ndarray) -> SeriesFit:
        n = len(values)
        index = np.arange(n)

        slope, intercept = fit_linear_trend(values)
        trend = slope * index + intercept

        seasonal = fourier_seasonality(values - trend, self.seasonal_period, self.harmonics)
        growth = self._recent_growth(values)

        forecast = slope * n + intercept + seasonal[n % self.seasonal_period] + growth

        fitted = trend + seasonal[index % self.seasonal_period]
        residuals = values - fitted
        mse = float(np.mean(residuals ** 2))

        confidence = float(np.clip(
            1 - np.sqrt(mse) / 100, self.min_confidence, self.max_confidence
        ))
        amplitude = float(seasonal.max() - seasonal.min())

        return SeriesFit(
            value=float(forecast),
            confidence=confidence,
            estimated_mape=self._self_mape(values, fitted),
            trend_direction=TrendDirection.from_delta(growth),
            seasonality_amplitude=amplitude,
            parameters={
                'trend_slope': slope,
                'trend_intercept': intercept,
                'seasonal_amplitude': amplitude,
                'growth': growth
            }
        )
