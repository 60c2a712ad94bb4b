"""Forecast diagnostics: walk-forward backtest, data quality and anomalies"""

import numpy as np
import pandas as pd
from typing import List, Optional, Sequence

from custodia_forecast.ensemble import EnsembleCombiner
from custodia_forecast.exceptions import EnsembleUnavailableError
from custodia_forecast.models.base import fit_linear_trend
from custodia_forecast.schemas import BacktestResult, DataQuality, Diagnostics, HistoricalPeriod
from custodia_forecast.utils.config import ConfigLoader
from custodia_forecast.utils.logging_config import get_logger
from custodia_forecast.utils.metrics import percentage_error


logger = get_logger(__name__)


class DiagnosticsEngine:
    """
    Evaluate a historical window and the ensemble built on it

    Steps:
    1. Walk-forward backtest over the last k periods
    2. MAPE over the backtest (zero actuals excluded)
    3. Data quality from history length and trend residual dispersion
    4. Rolling-window anomaly detection on services and GMV

    Diagnostics are a pure function of the window: running them twice on
    the same data yields identical output.
    """

    def __init__(
        self,
        combiner: Optional[EnsembleCombiner] = None,
        config: Optional[ConfigLoader] = None
    ):
        """
        Initialize diagnostics engine

        Args:
            combiner: Ensemble used to re-forecast held-out periods
            config: Configuration loader instance
        """
        self.config = config if config else ConfigLoader()
        self.combiner = combiner if combiner else EnsembleCombiner(config=self.config)

        self.backtest_periods = self.config.get('diagnostics.backtest_periods', 3)
        self.anomaly_window = self.config.get('diagnostics.anomaly_window', 6)
        self.anomaly_min_periods = self.config.get('diagnostics.anomaly_min_periods', 3)
        self.anomaly_std_multiple = self.config.get('diagnostics.anomaly_std_multiple', 3.0)
        self.residual_cv_threshold = self.config.get('diagnostics.residual_cv_threshold', 0.25)
        self.high_quality_min_periods = self.config.get('diagnostics.high_quality_min_periods', 12)
        self.medium_quality_min_periods = self.config.get('diagnostics.medium_quality_min_periods', 6)

    def backtest(self, periods: Sequence[HistoricalPeriod]) -> List[BacktestResult]:
        """
        Walk-forward backtest

        Each of the last k periods is forecast by the ensemble using only the
        periods before it. Held-out periods whose prefix supports no model
        are skipped.

        Args:
            periods: Validated historical window, oldest first

        Returns:
            BacktestResult per evaluated period, oldest first
        """
        periods = list(periods)
        k = min(self.backtest_periods, len(periods) - 1)
        results = []

        for i in range(len(periods) - k, len(periods)):
            held_out = periods[i]

            try:
                forecast = self.combiner.combine(periods[:i])
            except EnsembleUnavailableError:
                logger.debug(f"Skipping backtest of '{held_out.period_label}': no model can run")
                continue

            results.append(BacktestResult(
                period=held_out.period_label,
                actual=float(held_out.service_count),
                forecast=forecast.final_services,
                percentage_error=percentage_error(held_out.service_count, forecast.final_services)
            ))

        return results

    @staticmethod
    def backtest_mape(results: Sequence[BacktestResult]) -> Optional[float]:
        """Mean percentage error over scorable periods, None if there are none"""
        errors = [r.percentage_error for r in results if r.percentage_error is not None]
        if not errors:
            return None
        return float(np.mean(errors))

    def residual_cv(self, values: np.ndarray) -> float:
        """Coefficient of variation of the residuals around an OLS trend"""
        mean = float(np.mean(values))
        if mean <= 0:
            return float('inf')

        slope, intercept = fit_linear_trend(values)
        residuals = values - (slope * np.arange(len(values)) + intercept)
        return float(np.std(residuals) / mean)

    def data_quality(self, periods: Sequence[HistoricalPeriod]) -> DataQuality:
        """
        Classify the window

        - high: enough history and trend residuals within the CV threshold
        - medium: at least the medium minimum of periods
        - low: anything shorter
        """
        n = len(periods)
        values = np.array([p.service_count for p in periods], dtype=float)

        if n >= self.high_quality_min_periods and self.residual_cv(values) <= self.residual_cv_threshold:
            return DataQuality.HIGH
        if n >= self.medium_quality_min_periods:
            return DataQuality.MEDIUM
        return DataQuality.LOW

    def anomaly_mask(self, values: Sequence[float]) -> pd.Series:
        """
        Flag values far from the trailing rolling mean

        The rolling statistics of each position are computed on the previous
        periods only. A flat trailing window flags any deviation at all.
        """
        series = pd.Series(values, dtype=float)
        rolling = series.rolling(window=self.anomaly_window, min_periods=self.anomaly_min_periods)

        trailing_mean = rolling.mean().shift(1)
        trailing_std = rolling.std().shift(1)
        deviation = (series - trailing_mean).abs()

        flagged = (
            ((trailing_std > 0) & (deviation > self.anomaly_std_multiple * trailing_std)) |
            ((trailing_std == 0) & (deviation > 0))
        )
        return flagged.fillna(False).astype(bool)

    def anomaly_indices(self, periods: Sequence[HistoricalPeriod]) -> List[int]:
        """period_index values flagged on either the services or the GMV series"""
        services = self.anomaly_mask([p.service_count for p in periods])
        gmv = self.anomaly_mask([p.gmv for p in periods])
        flagged = (services | gmv).to_numpy()

        return [p.period_index for p, hit in zip(periods, flagged) if hit]

    def detect_anomalies(self, periods: Sequence[HistoricalPeriod]) -> bool:
        indices = self.anomaly_indices(periods)
        if indices:
            logger.warning(f"Anomalies detected at period index(es) {indices}")
        return bool(indices)

    def evaluate(self, periods: Sequence[HistoricalPeriod]) -> Diagnostics:
        """
        Run all diagnostics on a validated window

        Args:
            periods: Validated historical window, oldest first

        Returns:
            Diagnostics
        """
        results = self.backtest(periods)
        mape = self.backtest_mape(results)
        quality = self.data_quality(periods)
        anomalies = self.detect_anomalies(periods)

        mape_text = f"{mape:.2f}%" if mape is not None else "n/a"
        logger.info(
            f"Diagnostics: MAPE={mape_text} over {len(results)} backtest period(s), "
            f"quality={quality.value}, anomalies={anomalies}"
        )

        return Diagnostics(
            mape=mape,
            data_quality=quality,
            anomalies_detected=anomalies,
            backtest_results=results
        )
