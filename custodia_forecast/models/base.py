"""Base class and shared numerics for all component models"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
from sklearn.linear_model import LinearRegression

from custodia_forecast.exceptions import InsufficientSamplesError
from custodia_forecast.schemas import ComponentForecast, HistoricalPeriod, TrendDirection
from custodia_forecast.utils.config import ConfigLoader
from custodia_forecast.utils.logging_config import get_logger
from custodia_forecast.utils.metrics import calculate_mape


logger = get_logger(__name__)


# Self-reported MAPE when no period has a non-zero actual to score against
UNSCORABLE_MAPE = 100.0


@dataclass
class SeriesFit:
    """Result of running a model on a single series"""
    value: float
    confidence: float
    estimated_mape: float
    trend_direction: TrendDirection
    seasonality_amplitude: float
    parameters: Dict[str, Any] = field(default_factory=dict)


def fit_linear_trend(values: np.ndarray) -> Tuple[float, float]:
    """
    Ordinary least squares of value on period index

    Args:
        values: Series values, oldest first

    Returns:
        (slope, intercept)
    """
    X = np.arange(len(values), dtype=float).reshape(-1, 1)
    model = LinearRegression()
    model.fit(X, values)
    return float(model.coef_[0]), float(model.intercept_)


def fourier_seasonality(
    values: np.ndarray,
    period: int = 12,
    harmonics: int = 3
) -> np.ndarray:
    """
    Seasonal profile from the first harmonics of a discrete Fourier fit

    Coefficients are computed over the whole series whatever its length;
    a series shorter than one cycle simply under-observes it.

    Args:
        values: Series values (usually detrended), oldest first
        period: Cycle length in periods
        harmonics: Number of harmonics to keep

    Returns:
        Array of length `period` with the seasonal offset for each position
    """
    values = np.asarray(values, dtype=float)
    n = len(values)
    index = np.arange(n)
    positions = np.arange(period)
    profile = np.zeros(period)

    if n == 0:
        return profile

    for k in range(1, harmonics + 1):
        angle = 2 * np.pi * k * index / period
        a = 2 * np.sum(values * np.cos(angle)) / n
        b = 2 * np.sum(values * np.sin(angle)) / n

        profile_angle = 2 * np.pi * k * positions / period
        profile += a * np.cos(profile_angle) + b * np.sin(profile_angle)

    return profile


def seasonal_strength(values: np.ndarray, period: int = 12, harmonics: int = 3) -> float:
    """Seasonal amplitude relative to the data range (0 below one full cycle)"""
    values = np.asarray(values, dtype=float)

    if len(values) < period:
        return 0.0

    data_range = float(values.max() - values.min())
    if data_range == 0:
        return 0.0

    slope, intercept = fit_linear_trend(values)
    detrended = values - (slope * np.arange(len(values)) + intercept)
    profile = fourier_seasonality(detrended, period, harmonics)

    return float((profile.max() - profile.min()) / data_range)


class BaseComponentModel(ABC):
    """
    Abstract base class for all component models

    A component model turns a historical window into a one-step-ahead
    point forecast plus self-diagnostics. The algorithm runs once on the
    service-count series and once on the GMV series; confidence, MAPE,
    trend and seasonality are reported from the service-count run.

    Subclasses implement _fit_series() and set min_samples.
    """

    min_samples = 1

    def __init__(self, model_name: str, config: Optional[ConfigLoader] = None):
        """
        Initialize component model

        Args:
            model_name: Name of the model (used as ensemble key and in logs)
            config: Configuration loader instance
        """
        self.model_name = model_name
        self.config = config if config else ConfigLoader()
        self.seasonal_period = self.config.get('forecasting.seasonal_period', 12)
        self.harmonics = self.config.get('forecasting.harmonics', 3)

    @abstractmethod
    def _fit_series(self, values: np.ndarray) -> SeriesFit:
        """
        Run the algorithm on one series

        Args:
            values: Series values as floats, oldest first

        Returns:
            SeriesFit with the next-period forecast and diagnostics
        """
        pass

    def check_samples(self, n: int):
        if n < self.min_samples:
            raise InsufficientSamplesError(self.model_name, self.min_samples, n)

    def forecast(self, periods: Sequence[HistoricalPeriod]) -> ComponentForecast:
        """
        Forecast the next period for services and GMV

        Args:
            periods: Validated historical window, oldest first

        Returns:
            ComponentForecast

        Raises:
            InsufficientSamplesError: If the window is shorter than min_samples
        """
        self.check_samples(len(periods))

        services = np.array([p.service_count for p in periods], dtype=float)
        gmv = np.array([p.gmv for p in periods], dtype=float)

        services_fit = self._fit_series(services)
        gmv_fit = self._fit_series(gmv)

        logger.debug(
            f"{self.model_name}: services={services_fit.value:,.1f} "
            f"gmv={gmv_fit.value:,.0f} confidence={services_fit.confidence:.3f}"
        )

        return ComponentForecast(
            model_name=self.model_name,
            predicted_services=max(0.0, services_fit.value),
            predicted_gmv=max(0.0, gmv_fit.value),
            confidence=float(np.clip(services_fit.confidence, 0.0, 1.0)),
            estimated_mape=max(0.0, services_fit.estimated_mape),
            trend_direction=services_fit.trend_direction,
            seasonality_amplitude=max(0.0, services_fit.seasonality_amplitude),
            parameters=services_fit.parameters
        )

    @staticmethod
    def _self_mape(actuals: np.ndarray, predicted: np.ndarray) -> float:
        """In-sample MAPE with zero actuals excluded"""
        mape = calculate_mape(actuals, predicted)
        return UNSCORABLE_MAPE if mape is None else mape

    def get_metadata(self) -> Dict:
        return {
            'model_name': self.model_name,
            'min_samples': self.min_samples,
            'seasonal_period': self.seasonal_period,
            'harmonics': self.harmonics
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model_name='{self.model_name}')"
