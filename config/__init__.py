"""Configuration for the decision engine and the oracle client."""

from .engine_config import EngineConfig, OracleConfig

__all__ = ['EngineConfig', 'OracleConfig']
