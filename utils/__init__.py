"""Utility functions and classes for volatility analysis"""

from .visualization import VolatilityVisualizer

__all__ = ['VolatilityVisualizer']
