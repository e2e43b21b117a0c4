"""
Risk review oracle contract and an OpenAI-compatible chat-completions client.

The oracle receives the fused scores and regime and answers APPROVE or VETO
with a short rationale. Any transport, HTTP or parse failure surfaces as
ReviewUnavailable; the review stage turns that into a REJECT.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import json
import logging
import os
import re

import aiohttp

from ..config.settings import RiskReviewConfig
from ..core.exceptions import ReviewUnavailable
from .models import RiskVerdict, Verdict

logger = logging.getLogger(__name__)


JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

SYSTEM_PROMPT = """You are a strict chief risk officer. Your only duty is capital preservation.

The quant desk submitted a trade signal for final review. Review rules:
1. Score consistency: score_b and score_c must not diverge by more than 0.5
2. Light positions: veto any signal that only justifies a light position
3. Trend match: veto shorts in UPTREND and longs in DOWNTREND; RANGING allows both
4. Final score: final_score must be >= 0.78

Approve format:
{"decision": "APPROVE", "reason": "short reason"}

Veto format:
{"decision": "VETO", "reason": "short reason"}"""


@dataclass(frozen=True)
class ReviewRequest:
    """Review package sent to the oracle."""
    symbol: str
    score_b: float
    score_c: float
    final_score: float
    regime: str
    direction: Optional[str]
    context: Dict[str, Any] = field(default_factory=dict)

    def to_prompt(self) -> str:
        lines = [
            "Review the following trade signal:",
            "",
            f"Symbol: {self.symbol}",
            f"Market state: {self.regime}",
            f"Direction: {self.direction}",
            f"Score_B: {self.score_b:.3f}",
            f"Score_C: {self.score_c:.3f}",
            f"Final_Score: {self.final_score:.3f}",
        ]
        for key, value in self.context.items():
            lines.append(f"{key}: {value}")
        lines.extend(["", "Make your review decision."])
        return "\n".join(lines)


def parse_verdict(content: str) -> RiskVerdict:
    """
    Extract the first JSON object from an oracle reply.

    Raises:
        ReviewUnavailable: no JSON object, or an unknown decision
    """
    match = JSON_OBJECT_RE.search(content or "")
    if not match:
        raise ReviewUnavailable("Oracle reply contains no JSON object")

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ReviewUnavailable(f"Oracle reply is not valid JSON: {e}") from e

    decision = str(payload.get("decision", "")).strip().upper()
    reason = str(payload.get("reason", "")).strip()

    if decision == "APPROVE":
        return RiskVerdict(verdict=Verdict.APPROVE, rationale=reason)
    if decision in ("VETO", "REJECT"):
        return RiskVerdict(verdict=Verdict.REJECT, rationale=reason)
    raise ReviewUnavailable(f"Unknown oracle decision: {decision!r}")


class RiskOracle(ABC):
    """External reasoning oracle."""

    @abstractmethod
    async def review(self, request: ReviewRequest) -> RiskVerdict:
        """
        Review a trade signal.

        Raises:
            ReviewUnavailable: the oracle could not produce a verdict
        """


class ChatCompletionsOracle(RiskOracle):
    """Oracle backed by an OpenAI-compatible /chat/completions endpoint."""

    def __init__(self, config: Optional[RiskReviewConfig] = None, api_key: Optional[str] = None):
        self.config = config or RiskReviewConfig()
        self.api_key = api_key if api_key is not None else os.getenv(self.config.api_key_env, "")
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = logging.getLogger(f"{__name__}.ChatCompletionsOracle")

    @property
    def url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/chat/completions"

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        if self.api_key:
            headers['Authorization'] = f"Bearer {self.api_key}"
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            self.session = aiohttp.ClientSession(timeout=timeout, headers=self.headers)
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def __aenter__(self) -> "ChatCompletionsOracle":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def build_payload(self, request: ReviewRequest) -> Dict[str, Any]:
        return {
            'model': self.config.model,
            'messages': [
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {'role': 'user', 'content': request.to_prompt()},
            ],
            'temperature': self.config.temperature,
            'max_tokens': self.config.max_tokens,
        }

    async def review(self, request: ReviewRequest) -> RiskVerdict:
        session = await self._get_session()
        self.logger.info(f"Risk review request for {request.symbol}")

        try:
            async with session.post(self.url, json=self.build_payload(request)) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ReviewUnavailable(
                        f"Oracle HTTP {response.status}: {error_text[:200]}",
                        symbol=request.symbol,
                    )
                data = await response.json()
        except aiohttp.ClientError as e:
            raise ReviewUnavailable(f"Oracle transport error: {e}", symbol=request.symbol) from e

        try:
            content = data['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as e:
            raise ReviewUnavailable("Oracle response missing message content", symbol=request.symbol) from e

        verdict = parse_verdict(content)
        self.logger.info(
            f"Risk review {request.symbol}: {verdict.verdict.value} - {verdict.rationale}"
        )
        return verdict
