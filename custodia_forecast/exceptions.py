"""Error types raised by the forecasting engine"""

from typing import Dict, Optional


class ForecastingError(Exception):
    """Base class for all forecasting engine errors"""


class InsufficientSamplesError(ForecastingError):
    """A component model cannot run on a window this short"""

    def __init__(self, model_name: str, required: int, available: int):
        self.model_name = model_name
        self.required = required
        self.available = available
        super().__init__(
            f"{model_name} requires at least {required} periods, got {available}"
        )


class InvalidSeriesError(ForecastingError):
    """The historical series violates the input contract"""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid historical series: {reason}")


class EnsembleUnavailableError(ForecastingError):
    """Every component model failed, so no ensemble forecast exists"""

    message = "forecast unavailable, insufficient historical data"

    def __init__(self, failures: Optional[Dict[str, str]] = None):
        self.failures = dict(failures or {})
        super().__init__(self.message)


class AlertNotFoundError(ForecastingError, KeyError):
    """No alert with the requested id exists"""

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"Alert not found: {alert_id}")

    def __str__(self) -> str:
        return f"Alert not found: {self.alert_id}"
