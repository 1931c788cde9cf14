"""
Market data package for the decision engine.
Defines the market data interface, a replay source and the micro-feature calculator.
"""

from .source import CollectionFailure, MarketDataSource
from .micro_features import MicroFeatureCalculator
from .replay import ReplayMarketData

__all__ = ['CollectionFailure', 'MarketDataSource', 'MicroFeatureCalculator', 'ReplayMarketData']
