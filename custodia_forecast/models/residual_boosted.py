"""Gradient-boosting-like residual learner"""

import numpy as np
from typing import Dict, List, Optional

from custodia_forecast.models.base import BaseComponentModel, SeriesFit, seasonal_strength
from custodia_forecast.schemas import TrendDirection
from custodia_forecast.utils.config import ConfigLoader


class ResidualBoostedLearner(BaseComponentModel):
    """
    Boosting-style refinement of a last-value forecast

    Starting from the last observed value, each round computes residuals of
    the running prediction against the whole series and adds one scalar
    contribution (mean residual times the learning rate). This is a scalar
    stand-in for a tree ensemble: the feature matrix is built per period but
    each round's "tree" is a single leaf.

    Runs on any non-empty window; confidence drops for short windows.
    """

    min_samples = 1

    def __init__(self, config: Optional[ConfigLoader] = None):
        super().__init__(model_name='ResidualBoostedLearner', config=config)
        self.n_rounds = self.config.get('models.residual_boosted.n_rounds', 3)
        self.learning_rate = self.config.get('models.residual_boosted.learning_rate', 0.1)
        self.base_confidence = self.config.get('models.residual_boosted.base_confidence', 0.8)
        self.short_window = self.config.get('models.residual_boosted.short_window', 6)
        self.short_window_penalty = self.config.get('models.residual_boosted.short_window_penalty', 0.2)
        self.estimated_mape = self.config.get('models.residual_boosted.estimated_mape', 12.0)

    def build_features(self, values: np.ndarray) -> List[Dict[str, float]]:
        """
        Per-period feature vectors

        Lags and the moving average fall back to the current value where
        the history is too short.
        """
        features = []

        for i, value in enumerate(values):
            features.append({
                'lag1': float(values[i - 1]) if i > 0 else float(value),
                'lag2': float(values[i - 2]) if i > 1 else float(value),
                'index': float(i),
                'seasonal': float(np.sin(2 * np.pi * i / self.seasonal_period)),
                'moving_avg3': float(np.mean(values[i - 2:i + 1])) if i > 1 else float(value)
            })

        return features

    @staticmethod
    def _round_contribution(features: List[Dict[str, float]], residuals: np.ndarray) -> float:
        # Single-leaf tree: the leaf value is the mean residual
        return float(np.mean(residuals))

    def _fit_series(self, values: np.ndarray) -> SeriesFit:
        features = self.build_features(values)
        last = float(values[-1])
        prediction = last

        for _ in range(self.n_rounds):
            residuals = values - prediction
            prediction += self._round_contribution(features, residuals) * self.learning_rate

        penalty = self.short_window_penalty if len(values) < self.short_window else 0.0
        confidence = min(0.9, max(0.6, self.base_confidence - penalty))

        return SeriesFit(
            value=float(prediction),
            confidence=confidence,
            estimated_mape=float(self.estimated_mape),
            trend_direction=TrendDirection.from_delta(prediction - last),
            seasonality_amplitude=seasonal_strength(values, self.seasonal_period, self.harmonics),
            parameters={
                'n_rounds': self.n_rounds,
                'learning_rate': self.learning_rate,
                'n_features': len(features[0]) if features else 0
            }
        )
