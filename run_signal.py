#!/usr/bin/env python
"""
Run the decision loop for one symbol over recorded candles.
Loads engine and oracle settings from the environment (.env supported),
replays candles from a CSV file and prints the resulting decision as JSON.
"""
import sys
import json
import argparse
import logging
from pathlib import Path
from datetime import datetime
from typing import List, Optional

from config.engine_config import EngineConfig, OracleConfig
from decision.oracle_client import OracleClient
from decision.orchestrator import DecisionOrchestrator
from garch.estimator import InsufficientDataError
from garch.forecaster import GARCHForecaster
from market_data.replay import ReplayMarketData
from market_data.source import close_returns
from models import OrderBookDepth, RiskTolerance, StrategyParameters


def setup_logging(output_dir: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Configure logging with console and optional file handlers

    Parameters:
    -----------
    output_dir : Path, optional
        Directory for the log file; console only when omitted
    level : int
        Logging level for all handlers

    Returns:
    --------
    logging.Logger
        Configured logger
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if output_dir is not None:
        log_dir = output_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        handlers.append(logging.FileHandler(log_dir / f"signal_{timestamp}.log"))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )
    return logging.getLogger('signal_runner')


def load_order_book(path: Optional[Path]) -> OrderBookDepth:
    """Order book JSON shaped like {"bids": [[price, qty], ...], "asks": [...]}"""
    if path is None:
        return OrderBookDepth()
    with open(path) as f:
        raw = json.load(f)
    return OrderBookDepth(
        bids=[(float(p), float(q)) for p, q in raw.get('bids', [])],
        asks=[(float(p), float(q)) for p, q in raw.get('asks', [])]
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Produce a LONG/SHORT/WAIT signal for a symbol")
    parser.add_argument('symbol', help="Instrument symbol, e.g. BTCUSDT")
    parser.add_argument('--candles', type=Path, required=True,
                        help="CSV with open, high, low, close, volume columns (oldest first)")
    parser.add_argument('--order-book', type=Path, help="JSON order book snapshot")
    parser.add_argument('--env-file', type=Path, help=".env file with SIGNAL_* and ORACLE_* settings")
    parser.add_argument('--investment', type=float, default=100.0)
    parser.add_argument('--sigma', type=float, default=0.003)
    parser.add_argument('--take-profit', type=float, default=0.0015)
    parser.add_argument('--risk', choices=[r.value for r in RiskTolerance], default='MEDIUM')
    parser.add_argument('--plot', type=Path, help="Save a volatility plot to this path")
    parser.add_argument('--log-dir', type=Path, help="Directory for log files")
    parser.add_argument('--verbose', action='store_true')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logger = setup_logging(args.log_dir, logging.DEBUG if args.verbose else logging.INFO)

    try:
        engine_config = EngineConfig.from_env(env_file=args.env_file)
        oracle_config = OracleConfig.from_env(env_file=args.env_file)
        strategy = StrategyParameters(
            investment=args.investment,
            sigma=args.sigma,
            take_profit_pnl_click=args.take_profit,
            risk_tolerance=args.risk
        )
        market_data = ReplayMarketData.from_csv(
            args.candles,
            order_book=load_order_book(args.order_book),
            symbol=args.symbol
        )
    except (OSError, ValueError) as e:
        logger.error(f"Invalid setup: {str(e)}")
        return 2

    if not oracle_config.is_configured:
        logger.warning("ORACLE_API_KEY is not set; every attempt will fall back to WAIT")

    forecaster = GARCHForecaster()
    orchestrator = DecisionOrchestrator(
        market_data=market_data,
        oracle=OracleClient(oracle_config),
        config=engine_config,
        strategy_params=strategy,
        forecaster=forecaster
    )

    try:
        decision = orchestrator.run_until_signal_sync(args.symbol)
    except InsufficientDataError as e:
        logger.error(f"Cannot analyse {args.symbol}: {str(e)}")
        return 1
    print(json.dumps(decision.to_dict(), indent=2))

    if args.plot:
        from utils.visualization import VolatilityVisualizer

        candles = market_data.candles[-engine_config.candle_count:]
        analysis = forecaster.analyze(close_returns(candles), horizon=engine_config.forecast_horizon)
        visualizer = VolatilityVisualizer(backend='Agg')
        visualizer.plot_analysis(analysis, title=f"{args.symbol.upper()} volatility",
                                 save_path=args.plot)
        visualizer.close_all()

    return 0


if __name__ == '__main__':
    sys.exit(main())
