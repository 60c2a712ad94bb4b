"""Ensemble combination of component forecasts"""

from .combiner import EnsembleCombiner

__all__ = ['EnsembleCombiner']
