"""
Custodia Demand Forecasting Engine

Forecasts next-period service volume and GMV for custodian operations
from monthly aggregates, using a confidence-weighted ensemble of simple
heuristic models with backtest diagnostics and alerting.
"""

__version__ = "1.0.0"
__author__ = "Custodia Planning Team"
