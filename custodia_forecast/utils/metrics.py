"""Forecast accuracy metrics shared by models and diagnostics

Percentage errors are undefined for periods whose actual value is zero.
Those periods are excluded from every average computed here instead of
raising or being counted as a perfect score.
"""

import numpy as np
from typing import Optional, Sequence


def percentage_error(actual: float, forecast: float) -> Optional[float]:
    """
    Absolute percentage error of a single forecast

    Args:
        actual: Observed value
        forecast: Forecast value

    Returns:
        |actual - forecast| / actual * 100, or None when actual is zero
    """
    if actual == 0:
        return None
    return float(abs(actual - forecast) / abs(actual) * 100)


def calculate_mape(
    actuals: Sequence[float],
    predicted: Sequence[float]
) -> Optional[float]:
    """
    Mean Absolute Percentage Error over the non-zero actuals

    Args:
        actuals: Observed values
        predicted: Forecast values aligned with actuals

    Returns:
        MAPE in percent, or None when no period has a non-zero actual
    """
    actuals = np.asarray(actuals, dtype=float)
    predicted = np.asarray(predicted, dtype=float)

    if actuals.shape != predicted.shape:
        raise ValueError(
            f"actuals and predicted must have the same length "
            f"({len(actuals)} != {len(predicted)})"
        )

    mask = actuals != 0
    if not mask.any():
        return None

    errors = np.abs(actuals[mask] - predicted[mask]) / np.abs(actuals[mask])
    return float(np.mean(errors) * 100)
