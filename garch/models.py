from dataclasses import dataclass
from enum import Enum
from typing import Optional
import numpy as np


class GARCHMethod(str, Enum):
    """Estimation method used for the volatility parameters"""
    GARCH_11 = 'GARCH_11'
    EGARCH = 'EGARCH'
    SIMPLIFIED = 'SIMPLIFIED'


class VolatilityRegime(str, Enum):
    """Volatility classification by z-score"""
    LOW = 'LOW'
    NORMAL = 'NORMAL'
    HIGH = 'HIGH'
    EXTREME = 'EXTREME'

    @property
    def ordinal(self) -> int:
        return _REGIME_ORDER.index(self)


_REGIME_ORDER = [
    VolatilityRegime.LOW,
    VolatilityRegime.NORMAL,
    VolatilityRegime.HIGH,
    VolatilityRegime.EXTREME,
]


@dataclass(frozen=True)
class VolatilityParameters:
    """GARCH(1,1) coefficients"""
    omega: float  # baseline variance
    alpha: float  # shock weight
    beta: float  # persistence weight

    @property
    def persistence(self) -> float:
        return self.alpha + self.beta

    @property
    def long_run_variance(self) -> float:
        return self.omega / (1 - self.persistence)


@dataclass
class VolatilityForecast:
    """Forward projection of conditional volatility"""
    horizon: int
    volatilities: np.ndarray  # shape: (horizon,)
    params: VolatilityParameters


@dataclass
class VolatilityAnalysis:
    """Summary of a full volatility model run over one return series"""
    method: GARCHMethod
    params: VolatilityParameters
    current_volatility: float
    volatility_path: np.ndarray
    forecast: VolatilityForecast
    regime: VolatilityRegime
    z_score: Optional[float]

    @property
    def persistence(self) -> float:
        return self.params.persistence

    def to_dict(self) -> dict:
        return {
            'method': self.method.value,
            'params': {
                'omega': self.params.omega,
                'alpha': self.params.alpha,
                'beta': self.params.beta,
            },
            'currentVolatility': float(self.current_volatility),
            'forecastedVolatility': [float(v) for v in self.forecast.volatilities],
            'volatilityRegime': self.regime.value,
            'persistence': self.persistence,
        }
