from typing import Sequence, Union
import numpy as np
import logging
from .models import VolatilityParameters

logger = logging.getLogger(__name__)

ReturnSeries = Union[Sequence[float], np.ndarray]

# Fixed coefficients of the simplified estimator (persistence = 0.95)
ALPHA = 0.10
BETA = 0.85

MIN_OBSERVATIONS = 5
VARIANCE_FLOOR = 1e-12


class InsufficientDataError(ValueError):
    """Raised when a return series is too short for estimation"""


def sample_variance(returns: np.ndarray) -> float:
    """Unbiased sample variance, 0.0 for fewer than two points"""
    if len(returns) < 2:
        return 0.0
    return float(np.var(returns, ddof=1))


def calculate_log_returns(prices: Sequence[float]) -> np.ndarray:
    """Period-over-period log returns of a price series"""
    prices = np.asarray(prices, dtype=float)
    if np.any(prices <= 0):
        raise ValueError("Prices must be strictly positive to compute log returns")
    return np.diff(np.log(prices))


class GARCHEstimator:
    """Estimates GARCH(1,1) parameters and conditional volatility paths

    The estimator is a simplified, fixed-coefficient variant: alpha and beta
    are constants and omega is chosen so the long-run variance of the model
    matches the sample variance of the input series. It holds no state
    between calls and is safe to share across concurrent analyses.
    """

    def __init__(self, min_observations: int = MIN_OBSERVATIONS,
                 alpha: float = ALPHA,
                 beta: float = BETA):
        """
        Initialize estimator

        Args:
            min_observations: Minimum number of returns required for estimation
            alpha: ARCH coefficient (shock weight)
            beta: GARCH coefficient (persistence weight)
        """
        if alpha + beta >= 1:
            raise ValueError(
                f"GARCH constraint violation: alpha + beta must be < 1, got {alpha + beta:.3f}"
            )
        self.min_observations = min_observations
        self.alpha = alpha
        self.beta = beta
        self.logger = logging.getLogger('garch.estimator')

    def _prepare_returns(self, returns: ReturnSeries) -> np.ndarray:
        """Convert input to a float array and reject missing values"""
        returns = np.asarray(returns, dtype=float)
        if returns.ndim != 1:
            raise ValueError(f"Returns must be one-dimensional, got shape {returns.shape}")
        if np.any(~np.isfinite(returns)):
            raise ValueError("Input returns contain NaN or infinite values")
        return returns

    def _seed_variance(self, returns: np.ndarray) -> float:
        return max(sample_variance(returns), VARIANCE_FLOOR)

    def estimate_parameters(self, returns: ReturnSeries) -> VolatilityParameters:
        """Estimate GARCH(1,1) parameters from a return series"""
        returns = self._prepare_returns(returns)

        if len(returns) < self.min_observations:
            raise InsufficientDataError(
                f"Insufficient data for GARCH estimation: {len(returns)} < {self.min_observations} returns"
            )

        variance = sample_variance(returns)
        if variance <= 0:
            self.logger.warning(
                f"Zero sample variance over {len(returns)} returns, using floor {VARIANCE_FLOOR:g}"
            )
            variance = VARIANCE_FLOOR

        omega = variance * (1 - self.alpha - self.beta)

        self.logger.debug(
            f"Estimated parameters from {len(returns)} returns:\n"
            f"  omega: {omega:.6e}\n"
            f"  alpha: {self.alpha:.2f}\n"
            f"  beta:  {self.beta:.2f}"
        )

        return VolatilityParameters(omega=omega, alpha=self.alpha, beta=self.beta)

    def calculate_conditional_volatility(self, returns: ReturnSeries,
                                         params: VolatilityParameters) -> np.ndarray:
        """Conditional volatility path aligned with the input returns

        variance[0] is the sample variance of the series, then
        variance[t] = omega + alpha * r[t-1]^2 + beta * variance[t-1].
        """
        returns = self._prepare_returns(returns)
        n = len(returns)
        if n == 0:
            return np.empty(0)

        variances = np.empty(n)
        variances[0] = self._seed_variance(returns)
        for t in range(1, n):
            variances[t] = (
                params.omega
                + params.alpha * returns[t - 1] ** 2
                + params.beta * variances[t - 1]
            )

        return np.sqrt(variances)
