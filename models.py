"""Common data models used across the project."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class Direction(str, Enum):
    """Trading direction returned by the oracle"""
    LONG = 'LONG'
    SHORT = 'SHORT'
    WAIT = 'WAIT'

    @property
    def is_decisive(self) -> bool:
        return self is not Direction.WAIT


class RiskTolerance(str, Enum):
    """Risk appetite of the strategy"""
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'


@dataclass
class Candle:
    """Single OHLCV bar"""
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    open_time: Optional[int] = None  # epoch milliseconds


@dataclass
class OrderBookDepth:
    """Order book snapshot, levels stored as (price, volume)"""
    bids: List[Tuple[float, float]] = field(default_factory=list)
    asks: List[Tuple[float, float]] = field(default_factory=list)


@dataclass
class MicroData:
    """Market microstructure snapshot at decision time"""
    symbol: str
    last_price: float
    imbalance: float  # [-1, 1]
    volatility_score: float  # mean wick score, >= 0
    klines: List[Candle]  # most recent last


@dataclass
class StrategyParameters:
    """Tunable inputs describing the risk posture of the click strategy"""
    investment: float = 100.0
    sigma: float = 0.003  # inversion threshold
    take_profit_pnl_click: float = 0.0015  # profit step
    risk_tolerance: RiskTolerance = RiskTolerance.MEDIUM

    def __post_init__(self):
        self.risk_tolerance = RiskTolerance(self.risk_tolerance)
        for name in ('investment', 'sigma', 'take_profit_pnl_click'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")


@dataclass
class Decision:
    """Structured answer of the oracle, or the fallback"""
    direction: Direction
    sigma: float
    take_profit_pnl_click: float
    confidence: float
    reasoning: str = ''
    symbol: Optional[str] = None
    attempts: int = 0
    is_fallback: bool = False

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'tendance': self.direction.value,
            'sigma': self.sigma,
            'takeProfitPnlClick': self.take_profit_pnl_click,
            'confidence': self.confidence,
            'reasoning': self.reasoning,
            'attempts': self.attempts,
            'isFallback': self.is_fallback,
        }
