"""Gemini generateContent client used as the reasoning oracle."""

from typing import Any, Dict, Optional
import logging
import re
import time

import httpx

from config.engine_config import OracleConfig
from .contract import DecisionRequest, InvalidResponse, extract_json

logger = logging.getLogger(__name__)


class OracleFailure(Exception):
    """Network, HTTP or payload error while querying the oracle"""


def _excerpt(raw_text: str, limit: int = 300) -> str:
    compact = re.sub(r"\s+", " ", raw_text).strip()
    return compact[:limit] if compact else '<empty>'


class OracleClient:
    """Async client posting one DecisionRequest per call

    The per-call timeout lives here; the orchestrator owns the retry policy,
    so a failed call is reported once as OracleFailure and never retried.
    """

    def __init__(self, config: OracleConfig,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self.logger = logging.getLogger('decision.oracle_client')

    @property
    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/models/{self.config.model}:generateContent"

    def build_payload(self, request: DecisionRequest) -> Dict[str, Any]:
        return {
            'systemInstruction': {'parts': [{'text': request.system_prompt}]},
            'contents': [{'role': 'user', 'parts': [{'text': request.user_prompt}]}],
            'generationConfig': {
                'temperature': self.config.temperature,
                'maxOutputTokens': self.config.max_tokens,
                'responseMimeType': 'application/json',
                'responseSchema': request.response_schema,
            },
        }

    @staticmethod
    def extract_text(body: Dict[str, Any]) -> str:
        """Text of the first candidate of a generateContent response"""
        candidates = body.get('candidates')
        if not isinstance(candidates, list) or not candidates:
            raise OracleFailure("Oracle response without candidates")
        parts = (candidates[0].get('content') or {}).get('parts')
        if not isinstance(parts, list) or not parts:
            raise OracleFailure("Oracle response without content parts")
        text = ''.join(part.get('text', '') for part in parts if isinstance(part, dict))
        if not text.strip():
            raise OracleFailure("Oracle returned empty content")
        return text

    async def request_decision(self, request: DecisionRequest) -> Dict[str, Any]:
        """Send the request and return the decoded JSON decision payload"""
        if not self.config.is_configured:
            raise OracleFailure("Oracle API key is not configured")

        start = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.config.timeout_s),
                                         transport=self._transport) as client:
                response = await client.post(
                    self.endpoint,
                    headers={'x-goog-api-key': self.config.api_key},
                    json=self.build_payload(request)
                )
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise OracleFailure(f"Oracle timeout after {self.config.timeout_s:.1f}s") from e
        except httpx.HTTPStatusError as e:
            raise OracleFailure(
                f"Oracle request failed (status={e.response.status_code}, "
                f"body={_excerpt(e.response.text)!r})"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise OracleFailure(f"Oracle request failed: {e}") from e

        if not isinstance(body, dict):
            raise OracleFailure("Oracle response body is not a JSON object")

        text = self.extract_text(body)
        try:
            payload = extract_json(text)
        except InvalidResponse as e:
            raise OracleFailure(str(e)) from e

        self.logger.info(
            f"Oracle answered for {request.symbol} in {(time.monotonic() - start) * 1000:.0f} ms: "
            f"tendance={payload.get('tendance')}, confidence={payload.get('confidence')}"
        )
        return payload
