import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
from decision.contract import (
    RESPONSE_SCHEMA,
    InvalidResponse,
    build_request,
    build_user_prompt,
    calculate_atr,
    calculate_avg_body,
    check_decision_ranges,
    extract_json,
    get_system_prompt,
    parse_response,
    validate_response,
)
from garch.forecaster import GARCHForecaster
from models import Candle, Decision, Direction, MicroData, RiskTolerance, StrategyParameters


@pytest.fixture
def valid_response():
    return {
        'tendance': 'LONG',
        'sigma': 0.003,
        'takeProfitPnlClick': 0.0015,
        'confidence': 0.75,
        'reasoning': 'Bid-heavy book with higher lows',
    }


@pytest.fixture
def micro_data():
    closes = [50000, 50050, 50020, 50100, 50080, 50150, 50120, 50200]
    klines = [
        Candle(open=c - 20, high=c + 40, low=c - 50, close=c, volume=100)
        for c in closes
    ]
    return MicroData(symbol='BTCUSDT', last_price=50200.0, imbalance=0.2,
                     volatility_score=10.0, klines=klines)


def test_atr_simplified_true_range():
    klines = [
        Candle(open=100, high=105, low=95, close=102),
        Candle(open=102, high=108, low=100, close=106),
        Candle(open=106, high=112, low=104, close=110),
    ]
    # (10 + 8 + 8) / 3, gaps against previous close are ignored
    assert calculate_atr(klines) == pytest.approx(26 / 3)


def test_avg_body():
    klines = [
        Candle(open=100, high=111, low=99, close=110),
        Candle(open=115, high=116, low=104, close=105),
        Candle(open=105, high=121, low=104, close=120),
    ]
    assert calculate_avg_body(klines) == pytest.approx(35 / 3)


def test_empty_window_metrics():
    assert calculate_atr([]) == 0.0
    assert calculate_avg_body([]) == 0.0


def test_system_prompt_describes_click_strategy():
    prompt = get_system_prompt()
    for expected in ['Quantitative Trading Engine', 'Sigma', 'TakeProfitPnlClick',
                     'LONG', 'SHORT', 'WAIT', 'confidence',
                     'Inversion Threshold', 'position INVERTS',
                     'Profit Step', 'trailing stop RAISES']:
        assert expected in prompt


def test_user_prompt_sections(micro_data):
    prompt = build_user_prompt(micro_data)
    for expected in ['MARKET ANALYSIS REQUEST', 'Symbol: BTCUSDT', 'Order Book Imbalance',
                     '0.2000', 'Price Action', 'ATR', 'Average Body',
                     'REQUIRED RESPONSE FORMAT', 'CALCULATION GUIDELINES', 'DECISION RULES']:
        assert expected in prompt
    assert 'Current Strategy Parameters' not in prompt
    assert 'Volatility Model' not in prompt


def test_user_prompt_extreme_imbalance():
    data = MicroData(symbol='EXTREMEUSDT', last_price=1000.0, imbalance=0.95, volatility_score=50.0,
                     klines=[Candle(open=1000, high=1050, low=950, close=1025, volume=500)])
    prompt = build_user_prompt(data)
    assert 'EXTREMEUSDT' in prompt
    assert '0.9500' in prompt


def test_user_prompt_strategy_params(micro_data):
    params = StrategyParameters(investment=100, sigma=0.003, take_profit_pnl_click=0.0015,
                                risk_tolerance=RiskTolerance.MEDIUM)
    prompt = build_user_prompt(micro_data, params)

    assert 'Current Strategy Parameters' in prompt
    assert '100 USDT' in prompt
    assert '0.003' in prompt
    assert 'MEDIUM' in prompt


def test_user_prompt_volatility_section(micro_data):
    closes = np.array([k.close for k in micro_data.klines], dtype=float)
    analysis = GARCHForecaster().analyze(np.diff(np.log(closes)), horizon=3)
    prompt = build_user_prompt(micro_data, volatility=analysis)

    assert 'Volatility Model' in prompt
    assert f"Regime: {analysis.regime.value}" in prompt
    assert 'Persistence: 0.95' in prompt


def test_build_request(micro_data):
    request = build_request(micro_data)

    assert request.symbol == 'BTCUSDT'
    assert request.system_prompt == get_system_prompt()
    assert 'MARKET ANALYSIS REQUEST' in request.user_prompt
    assert request.response_schema == RESPONSE_SCHEMA
    assert request.response_schema['properties']['tendance']['enum'] == ['LONG', 'SHORT', 'WAIT']
    assert set(request.response_schema['required']) == {
        'tendance', 'sigma', 'takeProfitPnlClick', 'reasoning', 'confidence'
    }


def test_validate_accepts_well_formed(valid_response):
    assert validate_response(valid_response)
    for tendance in ['SHORT', 'WAIT']:
        assert validate_response({**valid_response, 'tendance': tendance})


@pytest.mark.parametrize('response', [
    None,
    {},
    {'tendance': 'INVALID'},
    'LONG',
    123,
    ['LONG'],
])
def test_validate_rejects_malformed(response):
    assert validate_response(response) is False


def test_validate_rejects_unknown_tendance(valid_response):
    assert not validate_response({**valid_response, 'tendance': 'INVALID'})
    assert not validate_response({**valid_response, 'tendance': 'long'})


def test_validate_requires_all_fields(valid_response):
    assert not validate_response({'tendance': 'LONG'})
    for name in valid_response:
        incomplete = {k: v for k, v in valid_response.items() if k != name}
        assert not validate_response(incomplete)


def test_validate_ignores_numeric_ranges(valid_response):
    """Range problems do not block structural acceptance"""
    out_of_range = {**valid_response, 'sigma': -1, 'confidence': 7}
    assert validate_response(out_of_range)


def test_range_checks_are_separate(valid_response):
    decision = parse_response({**valid_response, 'sigma': -1, 'confidence': 7})
    issues = check_decision_ranges(decision)

    assert len(issues) == 2
    assert any('sigma' in issue for issue in issues)
    assert any('confidence' in issue for issue in issues)
    assert check_decision_ranges(parse_response(valid_response)) == []


def test_parse_response(valid_response):
    decision = parse_response(valid_response, symbol='BTCUSDT')

    assert isinstance(decision, Decision)
    assert decision.direction == Direction.LONG
    assert decision.sigma == 0.003
    assert decision.take_profit_pnl_click == 0.0015
    assert decision.confidence == 0.75
    assert decision.symbol == 'BTCUSDT'
    assert not decision.is_fallback


def test_parse_response_rejects(valid_response):
    with pytest.raises(InvalidResponse):
        parse_response({'tendance': 'INVALID'})
    with pytest.raises(InvalidResponse):
        parse_response({**valid_response, 'sigma': 'wide'})


def test_extract_json_plain_and_fenced(valid_response):
    assert extract_json('{"tendance": "WAIT", "sigma": 0.002}')['tendance'] == 'WAIT'

    fenced = '```json\n{"tendance": "SHORT", "sigma": 0.004}\n```'
    assert extract_json(fenced) == {'tendance': 'SHORT', 'sigma': 0.004}


@pytest.mark.parametrize('text', ['', '   ', 'not json', '[1, 2]', '```json\n{broken\n```'])
def test_extract_json_rejects(text):
    with pytest.raises(InvalidResponse):
        extract_json(text)


if __name__ == '__main__':
    pytest.main([__file__])
