"""Confidence-weighted combination of component forecasts"""

import numpy as np
from typing import Dict, List, Optional, Sequence, Tuple

from custodia_forecast.exceptions import EnsembleUnavailableError, InsufficientSamplesError
from custodia_forecast.models import BaseComponentModel, build_default_models
from custodia_forecast.schemas import (
    ComponentForecast,
    ConfidenceLevel,
    EnsembleForecast,
    HistoricalPeriod
)
from custodia_forecast.utils.config import ConfigLoader
from custodia_forecast.utils.logging_config import get_logger


logger = get_logger(__name__)


class EnsembleCombiner:
    """
    Ensemble of component models

    Weighting strategy:
    - Each surviving model is weighted by its own confidence, normalised so
      the weights sum to 1
    - If every survivor reports zero confidence, all survivors get equal weight
    - Models that cannot run on the window are excluded and logged

    The uncertainty band is final_services +/- z * population stddev of the
    component service forecasts, floored at 0.
    """

    def __init__(
        self,
        models: Optional[List[BaseComponentModel]] = None,
        config: Optional[ConfigLoader] = None
    ):
        """
        Initialize ensemble combiner

        Args:
            models: Component models (default: ensemble.models from config)
            config: Configuration loader instance
        """
        self.config = config if config else ConfigLoader()
        self.models = models if models is not None else build_default_models(self.config)

        self.z_score = self.config.get('ensemble.z_score', 1.96)
        self.alta_threshold = self.config.get('ensemble.confidence_levels.alta', 0.8)
        self.media_threshold = self.config.get('ensemble.confidence_levels.media', 0.6)

    def run_models(
        self,
        periods: Sequence[HistoricalPeriod]
    ) -> Tuple[Dict[str, ComponentForecast], Dict[str, str]]:
        """
        Run every component model on the window

        Returns:
            (successful forecasts by model name, failure reasons by model name)
        """
        components = {}
        failures = {}

        for model in self.models:
            try:
                components[model.model_name] = model.forecast(periods)
            except InsufficientSamplesError as e:
                logger.warning(f"Excluding {model.model_name} from ensemble: {e}")
                failures[model.model_name] = str(e)

        return components, failures

    @staticmethod
    def determine_weights(components: Dict[str, ComponentForecast]) -> Dict[str, float]:
        """
        Normalised confidence weights

        Args:
            components: Successful component forecasts

        Returns:
            Weight per model name, summing to 1
        """
        if not components:
            return {}

        total = sum(c.confidence for c in components.values())

        if total == 0:
            logger.warning("All component confidences are zero, using equal weights")
            equal = 1.0 / len(components)
            return {name: equal for name in components}

        return {name: c.confidence / total for name, c in components.items()}

    def confidence_level(self, score: float) -> ConfidenceLevel:
        if score >= self.alta_threshold:
            return ConfidenceLevel.ALTA
        if score >= self.media_threshold:
            return ConfidenceLevel.MEDIA
        return ConfidenceLevel.BAJA

    def combine(self, periods: Sequence[HistoricalPeriod]) -> EnsembleForecast:
        """
        Build the ensemble forecast for the period after the window

        Args:
            periods: Validated historical window, oldest first

        Returns:
            EnsembleForecast without diagnostics

        Raises:
            EnsembleUnavailableError: If no component model could run
        """
        components, failures = self.run_models(periods)

        if not components:
            logger.error(f"No component model could run on {len(periods)} period(s)")
            raise EnsembleUnavailableError(failures)

        weights = self.determine_weights(components)

        final_services = sum(weights[name] * c.predicted_services for name, c in components.items())
        final_gmv = sum(weights[name] * c.predicted_gmv for name, c in components.items())
        overall_confidence = sum(weights[name] * c.confidence for name, c in components.items())

        spread = float(np.std([c.predicted_services for c in components.values()]))
        margin = self.z_score * spread

        logger.info(
            f"Ensemble of {len(components)} model(s): {final_services:,.1f} services, "
            f"GMV {final_gmv:,.0f}, confidence {overall_confidence:.3f}"
        )

        return EnsembleForecast(
            final_services=float(final_services),
            final_gmv=float(final_gmv),
            overall_confidence=float(overall_confidence),
            confidence_level=self.confidence_level(overall_confidence),
            uncertainty_lower=max(0.0, float(final_services - margin)),
            uncertainty_upper=float(final_services + margin),
            components=components,
            weights=weights,
            failed_models=failures
        )
