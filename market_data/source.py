"""Market data collaborator interface and candle frame helpers."""

from abc import ABC, abstractmethod
from typing import Iterable, List, Sequence
import logging

import numpy as np
import pandas as pd

from models import Candle, OrderBookDepth

logger = logging.getLogger(__name__)

CANDLE_COLUMNS = ['open', 'high', 'low', 'close', 'volume']


class CollectionFailure(Exception):
    """Market data could not be collected for this attempt"""


class MarketDataSource(ABC):
    """Read-only market data needed by one decision attempt

    Implementations wrap an exchange client; each call is treated as atomic
    by the orchestrator, which converts any failure into a retry.
    """

    @abstractmethod
    async def get_current_price(self, symbol: str) -> float:
        """Last traded (or mid) price"""

    @abstractmethod
    async def get_recent_candles(self, symbol: str, count: int) -> List[Candle]:
        """Most recent `count` candles, oldest first"""

    @abstractmethod
    async def get_order_book_depth(self, symbol: str, levels: int) -> OrderBookDepth:
        """Top `levels` bid and ask levels"""


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Candles as a float DataFrame with OHLCV columns"""
    records = [
        {
            'open': c.open,
            'high': c.high,
            'low': c.low,
            'close': c.close,
            'volume': c.volume,
        }
        for c in candles
    ]
    return pd.DataFrame.from_records(records, columns=CANDLE_COLUMNS).astype(float)


def frame_to_candles(frame: pd.DataFrame) -> List[Candle]:
    """Inverse of candles_to_frame; an `open_time` column is carried over when present"""
    missing = [col for col in CANDLE_COLUMNS[:4] if col not in frame.columns]
    if missing:
        raise ValueError(f"Candle frame is missing columns: {missing}")

    candles = []
    for row in frame.itertuples(index=False):
        open_time = getattr(row, 'open_time', None)
        candles.append(Candle(
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(getattr(row, 'volume', 0.0)),
            open_time=None if open_time is None or pd.isna(open_time) else int(open_time)
        ))
    return candles


def parse_raw_klines(raw: Sequence[Sequence]) -> List[Candle]:
    """Convert exchange kline arrays [open_time, open, high, low, close, volume, ...]"""
    return [
        Candle(
            open=float(k[1]),
            high=float(k[2]),
            low=float(k[3]),
            close=float(k[4]),
            volume=float(k[5]),
            open_time=int(k[0])
        )
        for k in raw
    ]


def parse_raw_depth(bids: Sequence[Sequence], asks: Sequence[Sequence]) -> OrderBookDepth:
    """Convert exchange depth levels given as [price, quantity] strings"""
    return OrderBookDepth(
        bids=[(float(price), float(qty)) for price, qty in bids],
        asks=[(float(price), float(qty)) for price, qty in asks]
    )


def close_returns(candles: Sequence[Candle]) -> np.ndarray:
    """Log returns of candle closes, oldest first"""
    closes = candles_to_frame(candles)['close']
    if (closes <= 0).any():
        raise ValueError("Candle closes must be strictly positive")
    return np.log(closes).diff().dropna().to_numpy()
