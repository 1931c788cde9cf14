from typing import Optional, Sequence
import numpy as np
import logging
from .estimator import GARCHEstimator, ReturnSeries
from .models import (
    GARCHMethod,
    VolatilityAnalysis,
    VolatilityForecast,
    VolatilityParameters,
    VolatilityRegime,
)

logger = logging.getLogger(__name__)


class GARCHForecaster:
    """Forecasts conditional volatility and classifies the volatility regime"""

    def __init__(self, estimator: Optional[GARCHEstimator] = None):
        self.estimator = estimator or GARCHEstimator()
        self.logger = logging.getLogger('garch.forecaster')

    def forecast_volatility(self, params: VolatilityParameters,
                            returns: ReturnSeries,
                            horizon: int) -> VolatilityForecast:
        """
        Project conditional volatility `horizon` steps forward.

        Future shocks are unknown, so the squared-return term is replaced by
        its expectation, the current variance:
        variance[t+1] = omega + (alpha + beta) * variance[t].
        With persistence 0.95 the path decays slowly toward the long-run level.
        """
        if isinstance(horizon, bool) or not isinstance(horizon, (int, np.integer)):
            raise ValueError(f"Forecast horizon must be an integer, got {horizon!r}")
        if horizon < 1:
            raise ValueError(f"Forecast horizon must be >= 1, got {horizon}")

        path = self.estimator.calculate_conditional_volatility(returns, params)
        if len(path) == 0:
            raise ValueError("Cannot forecast from an empty return series")

        variance = path[-1] ** 2
        variances = np.empty(horizon)
        for h in range(horizon):
            variance = params.omega + params.persistence * variance
            variances[h] = variance

        return VolatilityForecast(
            horizon=int(horizon),
            volatilities=np.sqrt(variances),
            params=params
        )

    def calculate_z_score(self, current_volatility: float,
                          historical_volatility: Sequence[float]) -> Optional[float]:
        """Z-score of current volatility against its history, None when degenerate"""
        history = np.asarray(historical_volatility, dtype=float)
        if len(history) < 2 or np.ptp(history) == 0:
            return None

        std = float(np.std(history, ddof=1))
        if std == 0 or not np.isfinite(std):
            return None

        return (current_volatility - float(np.mean(history))) / std

    def classify_volatility_regime(self, current_volatility: float,
                                   historical_volatility: Sequence[float]) -> VolatilityRegime:
        """
        Classify current volatility by z-score against its history.

        z < -1 is LOW, -1 <= z < 1 NORMAL, 1 <= z < 2 HIGH, z >= 2 EXTREME.
        A flat history (zero standard deviation) is NORMAL.
        """
        z_score = self.calculate_z_score(current_volatility, historical_volatility)
        if z_score is None:
            return VolatilityRegime.NORMAL

        if z_score < -1:
            return VolatilityRegime.LOW
        if z_score < 1:
            return VolatilityRegime.NORMAL
        if z_score < 2:
            return VolatilityRegime.HIGH
        return VolatilityRegime.EXTREME

    def analyze(self, returns: ReturnSeries, horizon: int = 5) -> VolatilityAnalysis:
        """Estimate, forecast and classify a return series in one pass"""
        params = self.estimator.estimate_parameters(returns)
        path = self.estimator.calculate_conditional_volatility(returns, params)
        forecast = self.forecast_volatility(params, returns, horizon)

        current_vol = float(path[-1])
        z_score = self.calculate_z_score(current_vol, path)
        regime = self.classify_volatility_regime(current_vol, path)

        z_text = 'n/a' if z_score is None else f"{z_score:.2f}"
        self.logger.info(
            f"Volatility analysis over {len(path)} returns:\n"
            f"  Current vol:  {current_vol:.6f}\n"
            f"  Persistence:  {params.persistence:.2f}\n"
            f"  Z-score:      {z_text}\n"
            f"  Regime:       {regime.value}\n"
            f"  Forecast[{horizon}]: {forecast.volatilities[-1]:.6f}"
        )

        return VolatilityAnalysis(
            method=GARCHMethod.SIMPLIFIED,
            params=params,
            current_volatility=current_vol,
            volatility_path=path,
            forecast=forecast,
            regime=regime,
            z_score=z_score
        )
