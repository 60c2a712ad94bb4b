"""Forecast engine orchestration

ForecastEngine wires the store, validator, component models, ensemble,
diagnostics and alert manager together and exposes the control interface
used by the CLI and by any presentation layer.
"""

from typing import List, Optional, Sequence

from custodia_forecast.alerts import AlertManager, build_recommendations
from custodia_forecast.data import SeriesValidator, TimeSeriesStore
from custodia_forecast.diagnostics import DiagnosticsEngine
from custodia_forecast.ensemble import EnsembleCombiner
from custodia_forecast.models import CurrentPeriodPacer
from custodia_forecast.schemas import (
    Alert,
    EnsembleForecast,
    HistoricalPeriod,
    PacingProjection,
    PacingSnapshot,
    PerformanceSummary,
    RecalibrationRecord
)
from custodia_forecast.utils.config import ConfigLoader
from custodia_forecast.utils.logging_config import get_logger


logger = get_logger(__name__)


class ForecastEngine:
    """
    Main forecasting engine

    Each forecast request:
    1. Pulls a fresh window from the store
    2. Validates it and applies the gap policy
    3. Runs the component models and combines them
    4. Runs diagnostics (backtest, data quality, anomalies)
    5. Raises alerts and triggers an automatic recalibration when MAPE has
       stayed above target for too many consecutive evaluations

    Forecasts are never cached. The alert manager is the only state shared
    between requests.
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        config: Optional[ConfigLoader] = None,
        alert_manager: Optional[AlertManager] = None
    ):
        """
        Initialize forecast engine

        Args:
            store: Source of historical periods
            config: Configuration loader instance
            alert_manager: Shared alert state (a new one is created if omitted)
        """
        self.store = store
        self.config = config if config else ConfigLoader()

        self.validator = SeriesValidator(self.config)
        self.combiner = EnsembleCombiner(config=self.config)
        self.diagnostics = DiagnosticsEngine(self.combiner, self.config)
        self.pacer = CurrentPeriodPacer(self.config)
        self.alert_manager = alert_manager if alert_manager else AlertManager(self.config)

        self.default_lookback = self.config.get('forecasting.lookback_periods', 24)

    def fetch(self, lookback: Optional[int]) -> List[HistoricalPeriod]:
        lookback = lookback if lookback is not None else self.default_lookback
        periods = self.store.fetch_window(lookback)
        logger.info(f"Fetched {len(periods)} period(s) (lookback={lookback})")
        return periods

    def forecast_series(self, periods: Sequence[HistoricalPeriod]) -> EnsembleForecast:
        """
        Forecast the period after an explicit window

        No alert state is touched.

        Args:
            periods: Historical periods, oldest first

        Returns:
            EnsembleForecast with diagnostics attached

        Raises:
            InvalidSeriesError: If the window violates the input contract
            EnsembleUnavailableError: If no component model can run
        """
        validated = self.validator.validate(periods)
        forecast = self.combiner.combine(validated)
        forecast.diagnostics = self.diagnostics.evaluate(validated)
        return forecast

    def forecast(self, lookback: Optional[int] = None) -> EnsembleForecast:
        """
        Forecast the next period from the store and update alert state

        Args:
            lookback: Number of trailing periods (default forecasting.lookback_periods)

        Returns:
            EnsembleForecast with diagnostics attached; if an automatic
            recalibration ran, the forecast produced by that run
        """
        forecast = self.forecast_series(self.fetch(lookback))

        self.alert_manager.evaluate(forecast)
        due = self.alert_manager.record_evaluation(forecast.diagnostics.mape)

        if due:
            logger.warning("Triggering automatic recalibration")
            forecast, _ = self._recalibrate('mape_above_target', lookback)

        return forecast

    def _recalibrate(self, reason: str, lookback: Optional[int]):
        forecast = self.forecast_series(self.fetch(lookback))
        record = self.alert_manager.apply_recalibration(reason, forecast)
        return forecast, record

    def trigger_recalibration(
        self,
        reason: str = 'manual',
        lookback: Optional[int] = None
    ) -> RecalibrationRecord:
        """
        Re-run the ensemble on a fresh window and regenerate the alert set

        Returns:
            The appended RecalibrationRecord
        """
        logger.info(f"Recalibration requested (reason: {reason})")
        _, record = self._recalibrate(reason, lookback)
        return record

    def project_current_period(
        self,
        snapshot: PacingSnapshot,
        lookback: Optional[int] = None
    ) -> PacingProjection:
        """
        Month-end projection for the period in flight

        Args:
            snapshot: Progress of the current period
            lookback: Number of closed periods to use as history

        Returns:
            PacingProjection
        """
        periods = self.validator.validate(self.fetch(lookback))
        return self.pacer.project(periods, snapshot)

    def resolve_alert(self, alert_id: str) -> Alert:
        return self.alert_manager.resolve_alert(alert_id)

    def clear_all_alerts(self) -> int:
        return self.alert_manager.clear_all_alerts()

    def alerts(self, include_closed: bool = False) -> List[Alert]:
        return self.alert_manager.alerts(include_closed)

    def recalibration_log(self) -> List[RecalibrationRecord]:
        return self.alert_manager.recalibration_log()

    def performance(self) -> PerformanceSummary:
        return self.alert_manager.performance_summary()

    def recommendations(self, forecast: EnsembleForecast) -> List[str]:
        return build_recommendations(
            forecast,
            target_mape=self.alert_manager.target_mape,
            low_confidence_threshold=self.alert_manager.low_confidence_threshold,
            max_band_ratio=self.config.get('alerts.max_band_ratio', 0.30)
        )
