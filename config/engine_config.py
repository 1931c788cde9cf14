"""
Engine configuration

Retry budget, fallback values and market data windows for the decision
engine, plus the connection settings of the oracle client.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Mapping, Optional, Union
import logging
import os

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _coerce(value, target_type):
    """Convert a raw setting (often an environment string) to the field type"""
    if isinstance(value, target_type):
        return value
    if target_type is bool:
        return str(value).strip().lower() in ('1', 'true', 'yes', 'on')
    if target_type is int:
        return int(float(value))
    return target_type(value)


class _SettingsLoader:
    """Dict and environment loading shared by the config dataclasses"""

    ENV_PREFIX = ''

    @classmethod
    def field_types(cls) -> Dict[str, type]:
        return {f.name: f.type for f in fields(cls)}

    @classmethod
    def from_dict(cls, data: Mapping):
        field_types = cls.field_types()
        unknown = set(data) - set(field_types)
        if unknown:
            logger.warning(f"Ignoring unknown {cls.__name__} settings: {sorted(unknown)}")

        kwargs = {}
        for name, target_type in field_types.items():
            if data.get(name) is not None:
                try:
                    kwargs[name] = _coerce(data[name], target_type)
                except (TypeError, ValueError) as e:
                    raise ValueError(f"Invalid value for {cls.__name__}.{name}: {data[name]!r}") from e
        return cls(**kwargs)

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None,
                 environ: Optional[Mapping[str, str]] = None):
        """Read <PREFIX><FIELD> variables, loading a .env file first when no mapping is given"""
        if environ is None:
            load_dotenv(dotenv_path=env_file, override=False)
            environ = os.environ

        data = {}
        for name in cls.field_types():
            key = f"{cls.ENV_PREFIX}{name.upper()}"
            if key in environ:
                data[name] = environ[key]
        return cls.from_dict(data)


@dataclass
class EngineConfig(_SettingsLoader):
    """Decision loop configuration (environment prefix SIGNAL_)"""

    ENV_PREFIX = 'SIGNAL_'

    # Retry loop
    retry_delay_ms: int = 1000
    max_retries: int = 5
    overall_timeout_ms: int = 30000

    # Fallback decision
    default_fallback_sigma: float = 0.003
    default_fallback_take_profit: float = 0.0015
    fallback_confidence: float = 0.0

    # Market data windows
    candle_interval: str = '1m'
    candle_count: int = 30
    order_book_levels: int = 20

    # Volatility model
    forecast_horizon: int = 5

    def __post_init__(self):
        if self.retry_delay_ms < 0:
            raise ValueError(f"retry_delay_ms must be >= 0, got {self.retry_delay_ms}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.overall_timeout_ms <= 0:
            raise ValueError(f"overall_timeout_ms must be > 0, got {self.overall_timeout_ms}")
        if self.default_fallback_sigma <= 0:
            raise ValueError(f"default_fallback_sigma must be > 0, got {self.default_fallback_sigma}")
        if self.default_fallback_take_profit <= 0:
            raise ValueError(
                f"default_fallback_take_profit must be > 0, got {self.default_fallback_take_profit}"
            )
        if not 0 <= self.fallback_confidence <= 1:
            raise ValueError(f"fallback_confidence must be in [0, 1], got {self.fallback_confidence}")
        if self.candle_count < 1 or self.order_book_levels < 1 or self.forecast_horizon < 1:
            raise ValueError("candle_count, order_book_levels and forecast_horizon must be >= 1")

    @property
    def retry_delay_s(self) -> float:
        return self.retry_delay_ms / 1000.0

    @property
    def overall_timeout_s(self) -> float:
        return self.overall_timeout_ms / 1000.0


@dataclass
class OracleConfig(_SettingsLoader):
    """Connection settings of the Gemini oracle client (environment prefix ORACLE_)"""

    ENV_PREFIX = 'ORACLE_'

    api_key: str = ''
    model: str = 'gemini-2.0-flash'
    base_url: str = 'https://generativelanguage.googleapis.com/v1beta'
    temperature: float = 0.7
    max_tokens: int = 4096
    timeout_s: float = 30.0

    def __post_init__(self):
        if not 0 <= self.temperature <= 2:
            raise ValueError(f"temperature must be in [0, 2], got {self.temperature}")
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be >= 1, got {self.max_tokens}")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key.strip())

    def __repr__(self) -> str:
        masked = '***' if self.api_key else ''
        return (
            f"OracleConfig(api_key={masked!r}, model={self.model!r}, "
            f"base_url={self.base_url!r}, timeout_s={self.timeout_s})"
        )
