"""Alert state and recalibration log shared across forecast runs

Alerts move from open to resolved (explicit user action) or to superseded
(a recalibration regenerates the alert set and drops alerts the new
diagnostics do not reaffirm). Recalibration records are append-only.

All mutation goes through a single re-entrant lock held by the manager
instance; there is no module-level state.
"""

import threading
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from custodia_forecast.exceptions import AlertNotFoundError
from custodia_forecast.schemas import (
    AccuracyTrend,
    Alert,
    AlertSeverity,
    AlertStatus,
    DataQuality,
    EnsembleForecast,
    PerformanceSummary,
    RecalibrationRecord
)
from custodia_forecast.utils.config import ConfigLoader
from custodia_forecast.utils.logging_config import get_logger


logger = get_logger(__name__)


MAPE_ABOVE_TARGET = 'mape_above_target'
ANOMALY_DETECTED = 'anomaly_detected'
LOW_CONFIDENCE = 'low_confidence'
LOW_DATA_QUALITY = 'low_data_quality'


class AlertManager:
    """
    Thread-safe store of alerts and recalibration records

    Alert codes derived from a forecast:
    - mape_above_target (high): backtest MAPE above target
    - anomaly_detected (medium): anomalies in the window
    - low_confidence (medium): overall confidence below threshold
    - low_data_quality (low): data quality classified as low
    """

    def __init__(self, config: Optional[ConfigLoader] = None):
        """
        Initialize alert manager

        Args:
            config: Configuration loader instance
        """
        self.config = config if config else ConfigLoader()
        self.target_mape = self.config.get('alerts.target_mape', 15.0)
        self.consecutive_breach_limit = self.config.get('alerts.consecutive_breaches', 3)
        self.low_confidence_threshold = self.config.get('alerts.low_confidence_threshold', 0.6)
        self.trend_tolerance = self.config.get('alerts.accuracy_trend_tolerance', 1.0)

        self._lock = threading.RLock()
        self._alerts: 'OrderedDict[str, Alert]' = OrderedDict()
        self._recalibrations: List[RecalibrationRecord] = []
        self._mape_history: List[float] = []
        self._consecutive_breaches = 0
        self._last_weights: Dict[str, float] = {}

    def derive_alerts(self, forecast: EnsembleForecast) -> List[Tuple[str, str, AlertSeverity]]:
        """
        Alert conditions met by a forecast, as (code, message, severity)

        Pure function of the forecast and the configured thresholds.
        """
        derived = []
        diagnostics = forecast.diagnostics

        if diagnostics is not None:
            if diagnostics.mape is not None and diagnostics.mape > self.target_mape:
                derived.append((
                    MAPE_ABOVE_TARGET,
                    f"Backtest MAPE {diagnostics.mape:.1f}% exceeds target {self.target_mape:.1f}%",
                    AlertSeverity.HIGH
                ))

            if diagnostics.anomalies_detected:
                derived.append((
                    ANOMALY_DETECTED,
                    "Anomalous periods detected in the historical window",
                    AlertSeverity.MEDIUM
                ))

        if forecast.overall_confidence < self.low_confidence_threshold:
            derived.append((
                LOW_CONFIDENCE,
                f"Ensemble confidence {forecast.overall_confidence:.2f} is below "
                f"{self.low_confidence_threshold:.2f}",
                AlertSeverity.MEDIUM
            ))

        if diagnostics is not None and diagnostics.data_quality is DataQuality.LOW:
            derived.append((
                LOW_DATA_QUALITY,
                "Historical window is too short for reliable diagnostics",
                AlertSeverity.LOW
            ))

        return derived

    def raise_alert(self, code: str, message: str, severity: AlertSeverity) -> Alert:
        """
        Open an alert, or return the open alert with the same code

        Returns:
            The new or existing open Alert
        """
        with self._lock:
            existing = self._find_open(code)
            if existing is not None:
                return existing

            alert = Alert(
                id=uuid.uuid4().hex[:12],
                code=code,
                message=message,
                severity=severity,
                created_at=datetime.now()
            )
            self._alerts[alert.id] = alert

        logger.warning(f"Alert raised [{severity.value}] {code}: {message}")
        return alert

    def evaluate(self, forecast: EnsembleForecast) -> List[Alert]:
        """
        Raise every alert the forecast calls for

        Also remembers the forecast weights as the snapshot taken "before"
        the next recalibration.

        Returns:
            Open alerts matching the forecast's conditions
        """
        with self._lock:
            self._last_weights = dict(forecast.weights)
            return [
                self.raise_alert(code, message, severity)
                for code, message, severity in self.derive_alerts(forecast)
            ]

    def resolve_alert(self, alert_id: str) -> Alert:
        """
        Mark an alert resolved

        Raises:
            AlertNotFoundError: If no alert has this id
        """
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                raise AlertNotFoundError(alert_id)

            if alert.status is AlertStatus.OPEN:
                alert.status = AlertStatus.RESOLVED
                logger.info(f"Alert {alert_id} ({alert.code}) resolved")

            return alert

    def clear_all_alerts(self) -> int:
        """Resolve every open alert, returning how many were resolved"""
        with self._lock:
            cleared = 0
            for alert in self._alerts.values():
                if alert.status is AlertStatus.OPEN:
                    alert.status = AlertStatus.RESOLVED
                    cleared += 1

        logger.info(f"Cleared {cleared} open alert(s)")
        return cleared

    def alerts(self, include_closed: bool = False) -> List[Alert]:
        """Alerts in creation order (open only unless include_closed)"""
        with self._lock:
            return [
                a for a in self._alerts.values()
                if include_closed or a.status is AlertStatus.OPEN
            ]

    def regenerate(self, forecast: EnsembleForecast) -> List[Alert]:
        """
        Replace the alert set with the one the forecast calls for

        Open alerts not reaffirmed by the forecast become superseded;
        reaffirmed alerts stay open under their existing id.
        """
        with self._lock:
            derived = self.derive_alerts(forecast)
            reaffirmed = {code for code, _, _ in derived}

            for alert in self._alerts.values():
                if alert.status is AlertStatus.OPEN and alert.code not in reaffirmed:
                    alert.status = AlertStatus.SUPERSEDED
                    logger.info(f"Alert {alert.id} ({alert.code}) superseded")

            return [self.raise_alert(code, message, severity) for code, message, severity in derived]

    def _find_open(self, code: str) -> Optional[Alert]:
        for alert in self._alerts.values():
            if alert.code == code and alert.status is AlertStatus.OPEN:
                return alert
        return None

    def record_evaluation(self, mape: Optional[float]) -> bool:
        """
        Track MAPE against the target

        An evaluation without a scorable MAPE leaves the breach count as is.
        The streak is reset in the same critical section that reports it due,
        so a streak hands out at most one recalibration trigger.

        Returns:
            True when MAPE has exceeded the target for the configured number
            of consecutive evaluations
        """
        with self._lock:
            if mape is None:
                return False

            self._mape_history.append(mape)

            if mape > self.target_mape:
                self._consecutive_breaches += 1
            else:
                self._consecutive_breaches = 0

            due = self._consecutive_breaches >= self.consecutive_breach_limit
            if due:
                self._consecutive_breaches = 0

        if due:
            logger.warning(
                f"MAPE above {self.target_mape:.1f}% for "
                f"{self.consecutive_breach_limit} consecutive evaluations"
            )
        return due

    def apply_recalibration(self, reason: str, forecast: EnsembleForecast) -> RecalibrationRecord:
        """
        Append a recalibration record and regenerate alerts from its forecast

        Args:
            reason: Trigger reason ('manual', 'mape_above_target', ...)
            forecast: Forecast recomputed by the recalibration run

        Returns:
            The appended RecalibrationRecord
        """
        with self._lock:
            record = RecalibrationRecord(
                timestamp=datetime.now(),
                trigger_reason=reason,
                weight_snapshot_before=dict(self._last_weights),
                weight_snapshot_after=dict(forecast.weights)
            )
            self._recalibrations.append(record)
            self._last_weights = dict(forecast.weights)
            self._consecutive_breaches = 0
            self.regenerate(forecast)

        logger.info(f"Recalibration recorded (reason: {reason})")
        return record

    def recalibration_log(self) -> List[RecalibrationRecord]:
        with self._lock:
            return list(self._recalibrations)

    def accuracy_trend(self) -> AccuracyTrend:
        """Compare the last two recorded MAPEs within the tolerance"""
        with self._lock:
            if len(self._mape_history) < 2:
                return AccuracyTrend.STABLE
            previous, current = self._mape_history[-2:]

        if current < previous - self.trend_tolerance:
            return AccuracyTrend.IMPROVING
        if current > previous + self.trend_tolerance:
            return AccuracyTrend.DEGRADING
        return AccuracyTrend.STABLE

    def performance_summary(self) -> PerformanceSummary:
        with self._lock:
            return PerformanceSummary(
                current_mape=self._mape_history[-1] if self._mape_history else None,
                target_mape=self.target_mape,
                accuracy_trend=self.accuracy_trend(),
                consecutive_breaches=self._consecutive_breaches,
                last_recalibration=self._recalibrations[-1].timestamp if self._recalibrations else None
            )
