"""
Micro-market features: order book imbalance and candle wick intensity.
"""

from typing import Dict, Sequence
import logging

import numpy as np

from models import Candle, MicroData, OrderBookDepth
from .source import candles_to_frame

logger = logging.getLogger(__name__)

WICK_SCALE = 10000  # basis points


class MicroFeatureCalculator:
    """Turns raw depth and recent candles into imbalance and wick score

    Quiet markets (no candles, empty book) are a normal operating condition
    and yield neutral values rather than errors.
    """

    def __init__(self):
        self.logger = logging.getLogger('market_data.micro_features')

    def calculate_imbalance(self, order_book: OrderBookDepth) -> float:
        """(sum bids - sum asks) / (sum bids + sum asks), 0.0 on an empty book"""
        bid_volume = float(sum(volume for _, volume in order_book.bids))
        ask_volume = float(sum(volume for _, volume in order_book.asks))
        if bid_volume < 0 or ask_volume < 0:
            raise ValueError("Order book volumes must be non-negative")

        total = bid_volume + ask_volume
        if total == 0:
            return 0.0

        return (bid_volume - ask_volume) / total

    def calculate_volatility_score(self, candles: Sequence[Candle]) -> float:
        """Mean of (upper wick + lower wick) / open in basis points"""
        frame = candles_to_frame(candles)
        frame = frame[frame['open'] > 0]
        if frame.empty:
            return 0.0

        body_top = frame[['open', 'close']].max(axis=1)
        body_bottom = frame[['open', 'close']].min(axis=1)
        upper_wick = frame['high'] - body_top
        lower_wick = body_bottom - frame['low']

        wick_scores = (upper_wick + lower_wick) / frame['open'] * WICK_SCALE
        return float(np.mean(wick_scores))

    def calculate(self, order_book: OrderBookDepth,
                  candles: Sequence[Candle]) -> Dict[str, float]:
        return {
            'imbalance': self.calculate_imbalance(order_book),
            'volatility_score': self.calculate_volatility_score(candles),
        }

    def build_micro_data(self, symbol: str, last_price: float,
                         order_book: OrderBookDepth,
                         candles: Sequence[Candle]) -> MicroData:
        """Assemble the snapshot handed to the decision contract"""
        if last_price <= 0:
            raise ValueError(f"Last price must be positive, got {last_price}")

        features = self.calculate(order_book, candles)
        self.logger.debug(
            f"{symbol} micro features: imbalance={features['imbalance']:.4f}, "
            f"wick score={features['volatility_score']:.2f} over {len(candles)} candles"
        )

        return MicroData(
            symbol=symbol,
            last_price=float(last_price),
            imbalance=features['imbalance'],
            volatility_score=features['volatility_score'],
            klines=list(candles)
        )
