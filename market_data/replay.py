"""In-memory market data source replaying a recorded candle frame."""

from pathlib import Path
from typing import List, Optional, Union
import logging

import pandas as pd

from models import Candle, OrderBookDepth
from .source import MarketDataSource, CollectionFailure, frame_to_candles

logger = logging.getLogger(__name__)


class ReplayMarketData(MarketDataSource):
    """Serves candles and a fixed order book from memory

    The cursor marks the most recent visible candle; `advance` moves it
    forward so successive attempts see fresh data.
    """

    def __init__(self, candles: pd.DataFrame,
                 order_book: Optional[OrderBookDepth] = None,
                 symbol: Optional[str] = None,
                 cursor: Optional[int] = None):
        if candles.empty:
            raise ValueError("Replay requires at least one candle")
        self.candles = frame_to_candles(candles)
        self.order_book = order_book or OrderBookDepth()
        self.symbol = symbol.upper() if symbol else None
        self.cursor = len(self.candles) if cursor is None else cursor
        if not 1 <= self.cursor <= len(self.candles):
            raise ValueError(f"Cursor {self.cursor} outside [1, {len(self.candles)}]")
        self.logger = logging.getLogger('market_data.replay')

    @classmethod
    def from_csv(cls, file_path: Union[str, Path],
                 order_book: Optional[OrderBookDepth] = None,
                 symbol: Optional[str] = None,
                 cursor: Optional[int] = None) -> 'ReplayMarketData':
        """Load candles from a CSV with open, high, low, close[, volume, open_time] columns"""
        frame = pd.read_csv(file_path)
        frame.columns = [str(col).strip().lower() for col in frame.columns]
        logger.info(f"Loaded {len(frame)} candles from {file_path}")
        return cls(frame, order_book=order_book, symbol=symbol, cursor=cursor)

    def _check_symbol(self, symbol: str):
        if self.symbol and symbol.upper() != self.symbol:
            raise CollectionFailure(f"No replay data for {symbol} (serving {self.symbol})")

    def advance(self, steps: int = 1) -> int:
        self.cursor = min(self.cursor + steps, len(self.candles))
        return self.cursor

    async def get_current_price(self, symbol: str) -> float:
        self._check_symbol(symbol)
        return self.candles[self.cursor - 1].close

    async def get_recent_candles(self, symbol: str, count: int) -> List[Candle]:
        self._check_symbol(symbol)
        start = max(0, self.cursor - count)
        return self.candles[start:self.cursor]

    async def get_order_book_depth(self, symbol: str, levels: int) -> OrderBookDepth:
        self._check_symbol(symbol)
        return OrderBookDepth(
            bids=list(self.order_book.bids[:levels]),
            asks=list(self.order_book.asks[:levels])
        )
