"""Backtesting and data diagnostics"""

from .engine import DiagnosticsEngine

__all__ = ['DiagnosticsEngine']
