"""
Oracle request/response contract.

Builds the analysis request sent to the reasoning oracle and checks the
structured answer. Structural validation (`validate_response`) and numeric
range checks (`check_decision_ranges`) are kept separate: only the former
gates acceptance.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import json
import logging
import re

import numpy as np

from garch.models import VolatilityAnalysis
from models import Candle, Decision, Direction, MicroData, StrategyParameters
from market_data.source import candles_to_frame

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ['tendance', 'sigma', 'takeProfitPnlClick', 'reasoning', 'confidence']
ALLOWED_TENDANCES = [d.value for d in Direction]
RECENT_CANDLES_IN_PROMPT = 10

RESPONSE_SCHEMA = {
    'type': 'OBJECT',
    'properties': {
        'tendance': {
            'type': 'STRING',
            'enum': ALLOWED_TENDANCES,
            'description': 'Trading direction',
        },
        'sigma': {
            'type': 'NUMBER',
            'description': 'Inversion threshold as a fraction of price',
        },
        'takeProfitPnlClick': {
            'type': 'NUMBER',
            'description': 'Profit step as a fraction of price',
        },
        'reasoning': {
            'type': 'STRING',
            'description': 'Short justification of the decision',
        },
        'confidence': {
            'type': 'NUMBER',
            'description': 'Confidence between 0 and 1',
        },
    },
    'required': REQUIRED_FIELDS,
}

SYSTEM_PROMPT = """You are a Quantitative Trading Engine specialised in short-term crypto futures.
You parameterise a "Click" strategy that always holds one position and reacts to price steps:

- Sigma (Inversion Threshold): relative adverse move at which the position INVERTS
  (a LONG becomes a SHORT and vice versa). Too small causes whipsaw, too large lets losses run.
- TakeProfitPnlClick (Profit Step): relative favourable move after which the trailing stop RAISES
  by one step and profit is locked in.

For every request answer with exactly one JSON object:
- tendance: LONG, SHORT or WAIT (WAIT when the market gives no clear edge)
- sigma and takeProfitPnlClick as decimal fractions of price (0.003 means 0.3%)
- confidence between 0 and 1
- reasoning: one or two sentences
Never add text outside the JSON object."""


class InvalidResponse(ValueError):
    """Oracle payload is structurally malformed"""


@dataclass
class DecisionRequest:
    """Everything the oracle needs to answer one attempt"""
    symbol: str
    system_prompt: str
    user_prompt: str
    response_schema: Dict[str, Any] = field(default_factory=lambda: RESPONSE_SCHEMA)


def calculate_atr(candles: Sequence[Candle]) -> float:
    """Average true range in its single-period form: mean of high - low"""
    frame = candles_to_frame(candles)
    if frame.empty:
        return 0.0
    return float(np.mean(frame['high'] - frame['low']))


def calculate_avg_body(candles: Sequence[Candle]) -> float:
    """Mean absolute candle body |close - open|"""
    frame = candles_to_frame(candles)
    if frame.empty:
        return 0.0
    return float(np.mean((frame['close'] - frame['open']).abs()))


def get_system_prompt() -> str:
    return SYSTEM_PROMPT


def _format_candles(candles: Sequence[Candle]) -> List[str]:
    lines = []
    recent = list(candles)[-RECENT_CANDLES_IN_PROMPT:]
    for i, c in enumerate(recent, start=1):
        lines.append(
            f"  {i:2d}. O={c.open:.6g} H={c.high:.6g} L={c.low:.6g} "
            f"C={c.close:.6g} V={c.volume:.6g}"
        )
    return lines


def build_user_prompt(micro_data: MicroData,
                      strategy_params: Optional[StrategyParameters] = None,
                      volatility: Optional[VolatilityAnalysis] = None) -> str:
    """Natural-language part of the request"""
    atr = calculate_atr(micro_data.klines)
    avg_body = calculate_avg_body(micro_data.klines)
    price = micro_data.last_price
    atr_pct = atr / price * 100 if price > 0 else 0.0

    if micro_data.imbalance > 0.2:
        pressure = 'buy pressure'
    elif micro_data.imbalance < -0.2:
        pressure = 'sell pressure'
    else:
        pressure = 'balanced'

    lines = [
        '=== MARKET ANALYSIS REQUEST ===',
        f"Symbol: {micro_data.symbol}",
        f"Last Price: {price:.8g}",
        '',
        '--- Microstructure ---',
        f"Order Book Imbalance: {micro_data.imbalance:.4f} ({pressure})",
        f"Wick Volatility Score: {micro_data.volatility_score:.2f} bps",
        '',
        f"--- Price Action (last {len(micro_data.klines)} candles) ---",
        f"ATR: {atr:.8g} ({atr_pct:.4f}% of price)",
        f"Average Body: {avg_body:.8g}",
    ]
    lines.extend(_format_candles(micro_data.klines))

    if volatility is not None:
        forecast = ', '.join(f"{v:.6f}" for v in volatility.forecast.volatilities)
        lines.extend([
            '',
            '--- Volatility Model (GARCH 1,1) ---',
            f"Regime: {volatility.regime.value}",
            f"Current Volatility: {volatility.current_volatility:.6f}",
            f"Persistence: {volatility.persistence:.2f}",
            f"Forecast ({volatility.forecast.horizon} steps): {forecast}",
        ])

    if strategy_params is not None:
        lines.extend([
            '',
            '--- Current Strategy Parameters ---',
            f"Investment: {strategy_params.investment:g} USDT",
            f"Sigma: {strategy_params.sigma:g}",
            f"TakeProfitPnlClick: {strategy_params.take_profit_pnl_click:g}",
            f"Risk Tolerance: {strategy_params.risk_tolerance.value}",
        ])

    lines.extend([
        '',
        '=== REQUIRED RESPONSE FORMAT ===',
        '{"tendance": "LONG|SHORT|WAIT", "sigma": <number>, "takeProfitPnlClick": <number>, '
        '"reasoning": "<text>", "confidence": <0..1>}',
        '',
        '=== CALCULATION GUIDELINES ===',
        f"- sigma should exceed the typical candle noise (ATR is {atr_pct:.4f}% of price)",
        '- takeProfitPnlClick is usually between 30% and 70% of sigma',
        '- widen both in HIGH or EXTREME volatility regimes',
        '',
        '=== DECISION RULES ===',
        '- LONG when buy pressure and price action agree',
        '- SHORT when sell pressure and price action agree',
        '- WAIT when signals conflict or confidence is below 0.5',
    ])
    return '\n'.join(lines)


def build_request(micro_data: MicroData,
                  strategy_params: Optional[StrategyParameters] = None,
                  volatility: Optional[VolatilityAnalysis] = None) -> DecisionRequest:
    return DecisionRequest(
        symbol=micro_data.symbol,
        system_prompt=get_system_prompt(),
        user_prompt=build_user_prompt(micro_data, strategy_params, volatility)
    )


def validate_response(response: Any) -> bool:
    """Structural gate: a dict with every schema field and a known tendance"""
    if not isinstance(response, dict) or not response:
        return False
    if any(name not in response or response[name] is None for name in REQUIRED_FIELDS):
        return False
    return response['tendance'] in ALLOWED_TENDANCES


def check_decision_ranges(decision: Decision) -> List[str]:
    """Semantic range checks, returns the violations found"""
    issues = []
    if not decision.sigma > 0:
        issues.append(f"sigma must be > 0, got {decision.sigma}")
    if not decision.take_profit_pnl_click > 0:
        issues.append(f"takeProfitPnlClick must be > 0, got {decision.take_profit_pnl_click}")
    if not 0 <= decision.confidence <= 1:
        issues.append(f"confidence must be in [0, 1], got {decision.confidence}")
    return issues


def extract_json(text: str) -> Dict[str, Any]:
    """Decode oracle text, tolerating Markdown code fences around the JSON"""
    if not isinstance(text, str) or not text.strip():
        raise InvalidResponse("Empty oracle response")

    cleaned = text.strip()
    fenced = re.search(r"```(?:json)?\s*(.*?)```", cleaned, re.DOTALL)
    if fenced:
        cleaned = fenced.group(1).strip()

    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise InvalidResponse(f"Oracle response is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise InvalidResponse(f"Oracle response is not a JSON object: {type(payload).__name__}")
    return payload


def parse_response(response: Any, symbol: Optional[str] = None) -> Decision:
    """Validate and convert an oracle payload into a Decision"""
    if not validate_response(response):
        raise InvalidResponse(f"Malformed oracle response: {response!r}")

    try:
        return Decision(
            direction=Direction(response['tendance']),
            sigma=float(response['sigma']),
            take_profit_pnl_click=float(response['takeProfitPnlClick']),
            confidence=float(response['confidence']),
            reasoning=str(response['reasoning']),
            symbol=symbol
        )
    except (TypeError, ValueError) as e:
        raise InvalidResponse(f"Non-numeric fields in oracle response: {e}") from e
