import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import asyncio

import pytest

from config.engine_config import EngineConfig
from decision.oracle_client import OracleFailure
from decision.orchestrator import DecisionOrchestrator
from garch.estimator import InsufficientDataError
from market_data.source import MarketDataSource
from models import Candle, Direction, OrderBookDepth, StrategyParameters


def make_candles(n=30):
    candles = []
    price = 100.0
    for i in range(n):
        step = 0.4 if i % 3 else -0.3
        close = price + step
        candles.append(Candle(open=price, high=max(price, close) + 0.2,
                              low=min(price, close) - 0.2, close=close, volume=10 + i))
        price = close
    return candles


class StubMarketData(MarketDataSource):
    """Serves fixed data; optionally fails the first `failures` collections"""

    def __init__(self, candles=None, failures=0):
        self.candles = make_candles() if candles is None else candles
        self.failures = failures
        self.calls = 0

    async def get_current_price(self, symbol):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError('exchange unreachable')
        return self.candles[-1].close if self.candles else 100.0

    async def get_recent_candles(self, symbol, count):
        return self.candles[-count:]

    async def get_order_book_depth(self, symbol, levels):
        return OrderBookDepth(bids=[(99.9, 5.0)], asks=[(100.1, 3.0)])


class ScriptedOracle:
    """Plays back responses in order; exceptions are raised, the last entry repeats"""

    def __init__(self, script):
        self.script = list(script)
        self.requests = []

    async def request_decision(self, request):
        self.requests.append(request)
        index = min(len(self.requests), len(self.script)) - 1
        item = self.script[index]
        if isinstance(item, Exception):
            raise item
        return item


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def answer(tendance, confidence=0.8):
    return {'tendance': tendance, 'sigma': 0.004, 'takeProfitPnlClick': 0.002,
            'confidence': confidence, 'reasoning': f"{tendance} test answer"}


@pytest.fixture
def config():
    return EngineConfig(retry_delay_ms=250, max_retries=4, overall_timeout_ms=60000)


@pytest.fixture
def sleep():
    return RecordingSleep()


def make_orchestrator(oracle, config, sleep, market_data=None, **kwargs):
    return DecisionOrchestrator(
        market_data=market_data or StubMarketData(),
        oracle=oracle,
        config=config,
        sleep=sleep,
        **kwargs
    )


def test_always_wait_falls_back(config, sleep):
    oracle = ScriptedOracle([answer('WAIT')])
    decision = asyncio.run(make_orchestrator(oracle, config, sleep).run_until_signal('btcusdt'))

    assert len(oracle.requests) == config.max_retries
    assert sleep.delays == [0.25] * (config.max_retries - 1)
    assert decision.direction == Direction.WAIT
    assert decision.confidence == 0
    assert decision.sigma == config.default_fallback_sigma
    assert decision.is_fallback
    assert decision.attempts == config.max_retries
    assert decision.symbol == 'BTCUSDT'


def test_long_on_second_attempt(config, sleep):
    oracle = ScriptedOracle([answer('WAIT'), answer('LONG', 0.75), answer('SHORT')])
    decision = asyncio.run(make_orchestrator(oracle, config, sleep).run_until_signal('BTCUSDT'))

    assert len(oracle.requests) == 2
    assert sleep.delays == [0.25]
    assert decision.direction == Direction.LONG
    assert decision.confidence == 0.75
    assert decision.sigma == 0.004
    assert decision.take_profit_pnl_click == 0.002
    assert decision.attempts == 2
    assert not decision.is_fallback


def test_short_on_first_attempt_has_no_delay(config, sleep):
    oracle = ScriptedOracle([answer('SHORT')])
    decision = asyncio.run(make_orchestrator(oracle, config, sleep).run_until_signal('BTCUSDT'))

    assert decision.direction == Direction.SHORT
    assert sleep.delays == []


@pytest.mark.parametrize('bad', [
    None,
    {},
    {'tendance': 'INVALID'},
    'LONG',
    OracleFailure('gateway timeout'),
    RuntimeError('unexpected client bug'),
])
def test_failures_consume_a_retry(config, sleep, bad):
    oracle = ScriptedOracle([bad, answer('LONG')])
    decision = asyncio.run(make_orchestrator(oracle, config, sleep).run_until_signal('BTCUSDT'))

    assert decision.direction == Direction.LONG
    assert len(oracle.requests) == 2
    assert sleep.delays == [0.25]


def test_persistent_oracle_failure_falls_back(config, sleep):
    oracle = ScriptedOracle([OracleFailure('down')])
    decision = asyncio.run(make_orchestrator(oracle, config, sleep).run_until_signal('BTCUSDT'))

    assert decision.is_fallback
    assert decision.direction == Direction.WAIT
    assert len(oracle.requests) == config.max_retries


def test_collection_failure_consumes_a_retry(config, sleep):
    market_data = StubMarketData(failures=2)
    oracle = ScriptedOracle([answer('SHORT')])
    orchestrator = make_orchestrator(oracle, config, sleep, market_data=market_data)
    decision = asyncio.run(orchestrator.run_until_signal('BTCUSDT'))

    assert decision.direction == Direction.SHORT
    assert decision.attempts == 3
    assert len(oracle.requests) == 1
    assert sleep.delays == [0.25, 0.25]


def test_collection_returning_nothing(config, sleep):
    class EmptySource(StubMarketData):
        async def get_order_book_depth(self, symbol, levels):
            return None

    oracle = ScriptedOracle([answer('LONG')])
    orchestrator = make_orchestrator(oracle, config, sleep, market_data=EmptySource())
    decision = asyncio.run(orchestrator.run_until_signal('BTCUSDT'))

    assert decision.is_fallback
    assert oracle.requests == []


def test_insufficient_data_propagates(config, sleep):
    market_data = StubMarketData(candles=make_candles(4))
    oracle = ScriptedOracle([answer('LONG')])
    orchestrator = make_orchestrator(oracle, config, sleep, market_data=market_data)

    with pytest.raises(InsufficientDataError):
        asyncio.run(orchestrator.run_until_signal('BTCUSDT'))
    assert oracle.requests == []


def test_overall_timeout_returns_fallback(sleep):
    class SlowOracle:
        def __init__(self):
            self.calls = 0

        async def request_decision(self, request):
            self.calls += 1
            await asyncio.sleep(5)
            return answer('LONG')

    config = EngineConfig(retry_delay_ms=10, max_retries=10, overall_timeout_ms=100)
    oracle = SlowOracle()
    decision = asyncio.run(make_orchestrator(oracle, config, sleep).run_until_signal('BTCUSDT'))

    assert decision.is_fallback
    assert decision.direction == Direction.WAIT
    assert decision.confidence == 0
    assert oracle.calls == 1


def test_overall_timeout_stops_new_attempts():
    """A retry delay longer than the remaining budget ends the run"""
    config = EngineConfig(retry_delay_ms=500, max_retries=10, overall_timeout_ms=200)
    oracle = ScriptedOracle([answer('WAIT')])
    orchestrator = DecisionOrchestrator(StubMarketData(), oracle, config=config)

    decision = asyncio.run(orchestrator.run_until_signal('BTCUSDT'))

    assert decision.is_fallback
    assert len(oracle.requests) == 1


def test_request_carries_features_and_strategy(config, sleep):
    oracle = ScriptedOracle([answer('LONG')])
    strategy = StrategyParameters(investment=250, sigma=0.005, take_profit_pnl_click=0.002)
    orchestrator = make_orchestrator(oracle, config, sleep, strategy_params=strategy)
    asyncio.run(orchestrator.run_until_signal('BTCUSDT'))

    request = oracle.requests[0]
    assert request.symbol == 'BTCUSDT'
    assert 'Order Book Imbalance: 0.2500' in request.user_prompt
    assert 'Volatility Model' in request.user_prompt
    assert '250 USDT' in request.user_prompt


def test_out_of_range_decision_still_returned(config, sleep):
    oracle = ScriptedOracle([{**answer('LONG'), 'confidence': 1.7}])
    decision = asyncio.run(make_orchestrator(oracle, config, sleep).run_until_signal('BTCUSDT'))

    assert decision.direction == Direction.LONG
    assert decision.confidence == 1.7


def test_concurrent_symbols_are_independent(config, sleep):
    oracle = ScriptedOracle([answer('LONG')])
    orchestrator = make_orchestrator(oracle, config, sleep)

    async def run_both():
        return await asyncio.gather(
            orchestrator.run_until_signal('BTCUSDT'),
            orchestrator.run_until_signal('ETHUSDT'),
        )

    btc, eth = asyncio.run(run_both())
    assert btc.symbol == 'BTCUSDT'
    assert eth.symbol == 'ETHUSDT'
    assert btc.direction == eth.direction == Direction.LONG


def test_sync_bridge(config, sleep):
    oracle = ScriptedOracle([answer('WAIT'), answer('SHORT')])
    decision = make_orchestrator(oracle, config, sleep).run_until_signal_sync('BTCUSDT')

    assert decision.direction == Direction.SHORT
    assert decision.attempts == 2


if __name__ == '__main__':
    pytest.main([__file__])
