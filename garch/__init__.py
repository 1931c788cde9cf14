"""
GARCH modeling package for volatility analysis.
Implements the simplified GARCH(1,1) estimator, forecaster and regime classifier.
"""

from .estimator import GARCHEstimator, InsufficientDataError, calculate_log_returns
from .forecaster import GARCHForecaster
from .models import (
    GARCHMethod,
    VolatilityAnalysis,
    VolatilityForecast,
    VolatilityParameters,
    VolatilityRegime,
)

__all__ = [
    'GARCHEstimator', 'GARCHForecaster', 'InsufficientDataError',
    'calculate_log_returns', 'GARCHMethod', 'VolatilityAnalysis',
    'VolatilityForecast', 'VolatilityParameters', 'VolatilityRegime',
]
