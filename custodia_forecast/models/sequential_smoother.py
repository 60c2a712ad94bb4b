"""Gated recurrent state smoother"""

import numpy as np
from scipy.special import expit
from typing import Optional, Tuple

from custodia_forecast.models.base import BaseComponentModel, SeriesFit, seasonal_strength
from custodia_forecast.schemas import TrendDirection
from custodia_forecast.utils.config import ConfigLoader


class SequentialStateSmoother(BaseComponentModel):
    """
    LSTM-style cell with fixed gate weights

    The series is min-max normalised and fed through a single memory cell
    whose gate coefficients are constants; the final hidden state is mapped
    back to the original scale as the forecast. There is no training step.
    """

    min_samples = 8

    def __init__(self, config: Optional[ConfigLoader] = None):
        super().__init__(model_name='SequentialStateSmoother', config=config)
        self.initial_state = self.config.get('models.sequential_smoother.initial_state', 0.5)
        self.estimated_mape = self.config.get('models.sequential_smoother.estimated_mape', 10.0)

    def _run_cell(self, inputs: np.ndarray) -> Tuple[float, float]:
        cell = self.initial_state
        hidden = self.initial_state

        for x in inputs:
            forget_gate = expit(0.5 * hidden + 0.3 * x - 0.2)
            input_gate = expit(0.4 * hidden + 0.6 * x + 0.1)
            candidate = np.tanh(0.3 * hidden + 0.7 * x)
            cell = forget_gate * cell + input_gate * candidate
            output_gate = expit(0.6 * hidden + 0.4 * x + 0.2)
            hidden = output_gate * np.tanh(cell)

        return float(cell), float(hidden)

    def _confidence(self, n: int) -> float:
        # Falls by 0.05 per period as the window shrinks towards min_samples
        return min(0.85, max(0.65, 0.8 - (self.min_samples - n) * 0.05))

    def _fit_series(self, values: np.ndarray) -> SeriesFit:
        low = float(values.min())
        high = float(values.max())
        value_range = high - low

        if value_range == 0:
            normalized = np.zeros_like(values)
        else:
            normalized = (values - low) / value_range

        cell, hidden = self._run_cell(normalized)
        forecast = hidden * value_range + low

        return SeriesFit(
            value=float(forecast),
            confidence=self._confidence(len(values)),
            estimated_mape=float(self.estimated_mape),
            trend_direction=TrendDirection.from_delta(forecast - values[-1]),
            seasonality_amplitude=seasonal_strength(values, self.seasonal_period, self.harmonics),
            parameters={
                'final_hidden_state': hidden,
                'final_cell_state': cell,
                'normalization_min': low,
                'normalization_max': high
            }
        )
