"""
Retry-until-decisive orchestration loop.

One run walks COLLECTING -> REQUESTING -> EVALUATING and either returns a
decisive LONG/SHORT answer or sleeps and tries again. Once the attempt
budget or the overall wall-clock budget is spent the run returns a WAIT
fallback. Collection errors, oracle errors and malformed answers only
consume attempts; InsufficientDataError from the volatility model is the
one error that reaches the caller.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Optional
import asyncio
import concurrent.futures
import logging

from config.engine_config import EngineConfig
from garch.estimator import InsufficientDataError
from garch.forecaster import GARCHForecaster
from garch.models import VolatilityAnalysis
from market_data.micro_features import MicroFeatureCalculator
from market_data.source import CollectionFailure, MarketDataSource, close_returns
from models import Decision, Direction, MicroData, StrategyParameters
from .contract import (
    DecisionRequest,
    InvalidResponse,
    build_request,
    check_decision_ranges,
    parse_response,
)
from .oracle_client import OracleFailure

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class OrchestratorState(str, Enum):
    COLLECTING = 'COLLECTING'
    REQUESTING = 'REQUESTING'
    EVALUATING = 'EVALUATING'
    RETRYING = 'RETRYING'
    DECIDED = 'DECIDED'
    FALLBACK = 'FALLBACK'


class DecisionOrchestrator:
    """Drives collection, oracle requests and retries for one symbol at a time

    Instances hold only immutable collaborators, so one orchestrator can serve
    concurrent runs for different symbols.
    """

    def __init__(self, market_data: MarketDataSource,
                 oracle,
                 config: Optional[EngineConfig] = None,
                 strategy_params: Optional[StrategyParameters] = None,
                 feature_calculator: Optional[MicroFeatureCalculator] = None,
                 forecaster: Optional[GARCHForecaster] = None,
                 sleep: SleepFunc = asyncio.sleep):
        """
        Args:
            market_data: Source of price, candles and order book depth
            oracle: Object exposing `async request_decision(DecisionRequest) -> dict`
            config: Retry and fallback configuration
            strategy_params: Current strategy posture included in every request
            feature_calculator: Micro-feature calculator, a default one when omitted
            forecaster: Volatility model, a default one when omitted
            sleep: Coroutine used for the inter-attempt delay
        """
        self.market_data = market_data
        self.oracle = oracle
        self.config = config or EngineConfig()
        self.strategy_params = strategy_params
        self.feature_calculator = feature_calculator or MicroFeatureCalculator()
        self.forecaster = forecaster or GARCHForecaster()
        self._sleep = sleep
        self.logger = logging.getLogger('decision.orchestrator')

    def fallback_decision(self, symbol: str, attempts: int) -> Decision:
        return Decision(
            direction=Direction.WAIT,
            sigma=self.config.default_fallback_sigma,
            take_profit_pnl_click=self.config.default_fallback_take_profit,
            confidence=self.config.fallback_confidence,
            reasoning=f"No decisive signal after {attempts} attempt(s); holding position",
            symbol=symbol,
            attempts=attempts,
            is_fallback=True
        )

    async def _collect(self, symbol: str) -> MicroData:
        """COLLECTING: fetch price, depth and candles as one step"""
        try:
            price = await self.market_data.get_current_price(symbol)
            order_book = await self.market_data.get_order_book_depth(
                symbol, self.config.order_book_levels
            )
            candles = await self.market_data.get_recent_candles(symbol, self.config.candle_count)
        except CollectionFailure:
            raise
        except Exception as e:
            raise CollectionFailure(f"Market data fetch failed for {symbol}: {e}") from e

        if price is None or order_book is None or candles is None:
            raise CollectionFailure(f"Market data source returned nothing for {symbol}")

        try:
            return self.feature_calculator.build_micro_data(symbol, price, order_book, candles)
        except ValueError as e:
            raise CollectionFailure(f"Unusable market data for {symbol}: {e}") from e

    def _analyze_volatility(self, micro_data: MicroData) -> VolatilityAnalysis:
        try:
            returns = close_returns(micro_data.klines)
        except ValueError as e:
            raise CollectionFailure(f"Unusable candle closes for {micro_data.symbol}: {e}") from e

        try:
            return self.forecaster.analyze(returns, horizon=self.config.forecast_horizon)
        except InsufficientDataError:
            raise
        except ValueError as e:
            raise CollectionFailure(f"Volatility model rejected {micro_data.symbol} returns: {e}") from e

    async def _request(self, request: DecisionRequest) -> Any:
        """REQUESTING: a single oracle round trip"""
        try:
            return await self.oracle.request_decision(request)
        except OracleFailure:
            raise
        except Exception as e:
            raise OracleFailure(f"Oracle call failed: {e}") from e

    async def _attempt(self, symbol: str, attempt: int) -> Optional[Decision]:
        """One full attempt, returns a decisive Decision or None to retry"""
        self.logger.debug(f"{symbol} attempt {attempt}: {OrchestratorState.COLLECTING.value}")
        try:
            micro_data = await self._collect(symbol)
            volatility = self._analyze_volatility(micro_data)

            self.logger.debug(f"{symbol} attempt {attempt}: {OrchestratorState.REQUESTING.value}")
            request = build_request(micro_data, self.strategy_params, volatility)
            response = await self._request(request)

            self.logger.debug(f"{symbol} attempt {attempt}: {OrchestratorState.EVALUATING.value}")
            decision = parse_response(response, symbol=symbol)
        except CollectionFailure as e:
            self.logger.warning(f"{symbol} attempt {attempt}: collection failed: {e}")
            return None
        except OracleFailure as e:
            self.logger.warning(f"{symbol} attempt {attempt}: oracle failed: {e}")
            return None
        except InvalidResponse as e:
            self.logger.warning(f"{symbol} attempt {attempt}: invalid response treated as WAIT: {e}")
            return None

        if not decision.direction.is_decisive:
            self.logger.info(f"{symbol} attempt {attempt}: oracle answered WAIT")
            return None

        for issue in check_decision_ranges(decision):
            self.logger.warning(f"{symbol} decision out of range: {issue}")

        decision.attempts = attempt
        return decision

    async def _run(self, symbol: str, deadline: float) -> Decision:
        loop = asyncio.get_running_loop()
        attempts = 0

        while attempts < self.config.max_retries:
            remaining = deadline - loop.time()
            if remaining <= 0:
                self.logger.warning(f"{symbol}: time budget exhausted before attempt {attempts + 1}")
                break

            attempts += 1
            try:
                decision = await asyncio.wait_for(self._attempt(symbol, attempts), timeout=remaining)
            except asyncio.TimeoutError:
                self.logger.warning(f"{symbol}: time budget exhausted during attempt {attempts}")
                break

            if decision is not None:
                self.logger.info(
                    f"{symbol}: {OrchestratorState.DECIDED.value} {decision.direction.value} "
                    f"(confidence={decision.confidence:.2f}) after {attempts} attempt(s)"
                )
                return decision

            if attempts >= self.config.max_retries:
                break

            remaining = deadline - loop.time()
            if remaining <= 0:
                self.logger.warning(f"{symbol}: time budget exhausted after attempt {attempts}")
                break

            self.logger.debug(
                f"{symbol}: {OrchestratorState.RETRYING.value} in {self.config.retry_delay_s:.2f}s"
            )
            if self.config.retry_delay_s >= remaining:
                await self._sleep(remaining)
                self.logger.warning(f"{symbol}: time budget exhausted while waiting to retry")
                break
            await self._sleep(self.config.retry_delay_s)

        self.logger.info(f"{symbol}: {OrchestratorState.FALLBACK.value} after {attempts} attempt(s)")
        return self.fallback_decision(symbol, attempts)

    async def run_until_signal(self, symbol: str) -> Decision:
        """Loop until a LONG/SHORT answer or the WAIT fallback"""
        symbol = symbol.upper()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.overall_timeout_s

        self.logger.info(
            f"Starting analysis for {symbol}: max_retries={self.config.max_retries}, "
            f"retry_delay={self.config.retry_delay_ms}ms, timeout={self.config.overall_timeout_ms}ms"
        )
        return await self._run(symbol, deadline)

    def run_until_signal_sync(self, symbol: str) -> Decision:
        """Blocking bridge for callers without a running event loop"""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.run_until_signal(symbol))

        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(asyncio.run, self.run_until_signal(symbol))
            return future.result()
