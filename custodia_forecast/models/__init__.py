"""Component forecasting models"""

from typing import List, Optional

from .base import BaseComponentModel, SeriesFit, UNSCORABLE_MAPE
from .trend_decomposer import TrendDecomposer
from .autoregressive import AutoRegressiveDifferencer
from .residual_boosted import ResidualBoostedLearner
from .sequential_smoother import SequentialStateSmoother
from .pacing import AccelerationEstimator, CurrentPeriodPacer, IntraMonthProjector

from custodia_forecast.utils.config import ConfigLoader


MODEL_REGISTRY = {
    'TrendDecomposer': TrendDecomposer,
    'AutoRegressiveDifferencer': AutoRegressiveDifferencer,
    'ResidualBoostedLearner': ResidualBoostedLearner,
    'SequentialStateSmoother': SequentialStateSmoother
}


def get_model(name: str, config: Optional[ConfigLoader] = None) -> BaseComponentModel:
    """Instantiate a component model by name"""
    if name not in MODEL_REGISTRY:
        raise ValueError(f"Unknown model: {name}. Available: {list(MODEL_REGISTRY)}")
    return MODEL_REGISTRY[name](config=config)


def build_default_models(config: Optional[ConfigLoader] = None) -> List[BaseComponentModel]:
    """Models listed under ensemble.models, or the full registry"""
    config = config if config else ConfigLoader()
    names = config.get('ensemble.models', list(MODEL_REGISTRY))
    return [get_model(name, config) for name in names]


__all__ = [
    'BaseComponentModel',
    'SeriesFit',
    'UNSCORABLE_MAPE',
    'TrendDecomposer',
    'AutoRegressiveDifferencer',
    'ResidualBoostedLearner',
    'SequentialStateSmoother',
    'IntraMonthProjector',
    'AccelerationEstimator',
    'CurrentPeriodPacer',
    'MODEL_REGISTRY',
    'get_model',
    'build_default_models'
]
