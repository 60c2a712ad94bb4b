"""Data shapes exchanged between the store, the models and presentation"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TrendDirection(str, Enum):
    INCREASING = 'increasing'
    DECREASING = 'decreasing'
    STABLE = 'stable'

    @classmethod
    def from_delta(cls, delta: float) -> 'TrendDirection':
        if delta > 0:
            return cls.INCREASING
        if delta < 0:
            return cls.DECREASING
        return cls.STABLE


class ConfidenceLevel(str, Enum):
    ALTA = 'Alta'
    MEDIA = 'Media'
    BAJA = 'Baja'


class DataQuality(str, Enum):
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'


class AlertSeverity(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class AlertStatus(str, Enum):
    OPEN = 'open'
    RESOLVED = 'resolved'
    SUPERSEDED = 'superseded'


class AccuracyTrend(str, Enum):
    IMPROVING = 'improving'
    STABLE = 'stable'
    DEGRADING = 'degrading'


@dataclass(frozen=True)
class HistoricalPeriod:
    """Monthly aggregate supplied by the time series store"""
    period_index: int
    period_label: str
    service_count: int
    gmv: float


@dataclass(frozen=True)
class PacingSnapshot:
    """Progress of the period currently in flight"""
    services_to_date: int
    gmv_to_date: float
    days_elapsed: int
    days_in_period: int

    @property
    def progress(self) -> float:
        return self.days_elapsed / self.days_in_period


@dataclass
class ComponentForecast:
    """Point forecast and self-diagnostics of one component model"""
    model_name: str
    predicted_services: float
    predicted_gmv: float
    confidence: float
    estimated_mape: float
    trend_direction: TrendDirection
    seasonality_amplitude: float
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'model_name': self.model_name,
            'predicted_services': self.predicted_services,
            'predicted_gmv': self.predicted_gmv,
            'confidence': self.confidence,
            'estimated_mape': self.estimated_mape,
            'trend_direction': self.trend_direction.value,
            'seasonality_amplitude': self.seasonality_amplitude,
            'parameters': dict(self.parameters)
        }


@dataclass(frozen=True)
class BacktestResult:
    """One held-out period of a walk-forward backtest

    percentage_error is None when the actual is zero; such periods are
    excluded from the MAPE average.
    """
    period: str
    actual: float
    forecast: float
    percentage_error: Optional[float]


@dataclass
class Diagnostics:
    mape: Optional[float]
    data_quality: DataQuality
    anomalies_detected: bool
    backtest_results: List[BacktestResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mape': self.mape,
            'data_quality': self.data_quality.value,
            'anomalies_detected': self.anomalies_detected,
            'backtest_results': [
                {
                    'period': r.period,
                    'actual': r.actual,
                    'forecast': r.forecast,
                    'percentage_error': r.percentage_error
                }
                for r in self.backtest_results
            ]
        }


@dataclass
class EnsembleForecast:
    """Confidence-weighted combination of the component forecasts

    The uncertainty band is final_services +/- z * stddev of the component
    forecasts. It describes disagreement between models under a near-normal
    assumption and is not a statistical confidence interval.
    """
    final_services: float
    final_gmv: float
    overall_confidence: float
    confidence_level: ConfidenceLevel
    uncertainty_lower: float
    uncertainty_upper: float
    components: Dict[str, ComponentForecast]
    weights: Dict[str, float]
    diagnostics: Optional[Diagnostics] = None
    failed_models: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'final_services': self.final_services,
            'final_gmv': self.final_gmv,
            'overall_confidence': self.overall_confidence,
            'confidence_level': self.confidence_level.value,
            'uncertainty_lower': self.uncertainty_lower,
            'uncertainty_upper': self.uncertainty_upper,
            'components': {name: c.to_dict() for name, c in self.components.items()},
            'weights': dict(self.weights),
            'diagnostics': self.diagnostics.to_dict() if self.diagnostics else None,
            'failed_models': dict(self.failed_models)
        }


@dataclass
class PacingProjection:
    """Month-end projection for the period in flight"""
    projected_services: float
    projected_gmv: float
    confidence: float
    components: Dict[str, float]
    weights: Dict[str, float]
    change_point_detected: bool
    recent_growth_rate: float
    divergence_alert: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'projected_services': self.projected_services,
            'projected_gmv': self.projected_gmv,
            'confidence': self.confidence,
            'components': dict(self.components),
            'weights': dict(self.weights),
            'change_point_detected': self.change_point_detected,
            'recent_growth_rate': self.recent_growth_rate,
            'divergence_alert': self.divergence_alert
        }


@dataclass
class Alert:
    id: str
    code: str
    message: str
    severity: AlertSeverity
    created_at: datetime
    status: AlertStatus = AlertStatus.OPEN

    @property
    def resolved(self) -> bool:
        """True once the alert is no longer open (resolved or superseded)"""
        return self.status is not AlertStatus.OPEN


@dataclass(frozen=True)
class RecalibrationRecord:
    timestamp: datetime
    trigger_reason: str
    weight_snapshot_before: Dict[str, float]
    weight_snapshot_after: Dict[str, float]


@dataclass(frozen=True)
class PerformanceSummary:
    current_mape: Optional[float]
    target_mape: float
    accuracy_trend: AccuracyTrend
    consecutive_breaches: int
    last_recalibration: Optional[datetime]
