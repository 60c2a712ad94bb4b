"""Alert state, recalibration log and recommendations"""

from .manager import (
    AlertManager,
    MAPE_ABOVE_TARGET,
    ANOMALY_DETECTED,
    LOW_CONFIDENCE,
    LOW_DATA_QUALITY
)
from .recommendations import build_recommendations

__all__ = [
    'AlertManager',
    'MAPE_ABOVE_TARGET',
    'ANOMALY_DETECTED',
    'LOW_CONFIDENCE',
    'LOW_DATA_QUALITY',
    'build_recommendations'
]
