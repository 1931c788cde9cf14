"""
Decision package: oracle contract, oracle client and the retry orchestrator.
"""

from .contract import (
    DecisionRequest,
    InvalidResponse,
    build_request,
    check_decision_ranges,
    parse_response,
    validate_response,
)
from .oracle_client import OracleClient, OracleFailure
from .orchestrator import DecisionOrchestrator

__all__ = [
    'DecisionRequest', 'InvalidResponse', 'build_request', 'check_decision_ranges',
    'parse_response', 'validate_response', 'OracleClient', 'OracleFailure',
    'DecisionOrchestrator',
]
