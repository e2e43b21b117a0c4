"""
Risk Review Stage - one-shot oracle review with deterministic overrides.

The oracle call is bounded by a timeout and an optional cancellation event;
timeouts, cancellation and oracle failures all fail closed to REJECT.
Regardless of the oracle, the following force REJECT:

1. |score_b - score_c| above the allowed divergence
2. the oracle rationale recommends a light / reduced position
3. the direction fights the regime (short in UPTREND, long in DOWNTREND)
4. final score below the review floor
"""

import asyncio
import logging
import re
from typing import List, Optional

from ..analytics.trend import MarketRegime
from ..config.settings import RiskReviewConfig
from ..core.exceptions import InconsistentScore, ReviewUnavailable
from ..utils.logger import get_trading_logger
from .models import Direction, FusionDecision, GateResult, ReviewOutcome, RiskVerdict, Verdict
from .oracle import ReviewRequest, RiskOracle

logger = logging.getLogger(__name__)


REVIEW_UNAVAILABLE = "risk-review unavailable"

LIGHT_POSITION_RE = re.compile(
    r"\blight(?:er)?[\s-]+(?:position|size|exposure)"
    r"|\b(?:reduce|reduced|smaller)[\s-]+(?:the\s+)?(?:position|size)",
    re.IGNORECASE,
)
LIGHT_SIGNAL_RE = re.compile(r"\bLIGHT\b")


class RiskReviewStage:
    """Final review of a gated, directional decision."""

    def __init__(self, oracle: RiskOracle, config: Optional[RiskReviewConfig] = None):
        self.oracle = oracle
        self.config = config or RiskReviewConfig()
        self.trading_logger = get_trading_logger(f"{__name__}.RiskReviewStage")

    def check_consistency(self, decision: FusionDecision):
        """
        Raises:
            InconsistentScore: scores diverge beyond the allowed spread
        """
        limit = self.config.max_score_divergence
        if abs(decision.score_b - decision.score_c) > limit:
            raise InconsistentScore(decision.score_b, decision.score_c, limit, symbol=decision.symbol)

    def deterministic_overrides(self, decision: FusionDecision, regime: MarketRegime) -> List[str]:
        """Overrides that do not depend on the oracle's answer."""
        overrides: List[str] = []

        try:
            self.check_consistency(decision)
        except InconsistentScore as e:
            overrides.append(str(e))

        if decision.direction == Direction.SHORT and regime == MarketRegime.UPTREND:
            overrides.append("counter-trend: short in UPTREND")
        elif decision.direction == Direction.LONG and regime == MarketRegime.DOWNTREND:
            overrides.append("counter-trend: long in DOWNTREND")

        if decision.final_score < self.config.min_final_score:
            overrides.append(
                f"final score {decision.final_score:.3f} < {self.config.min_final_score:.2f}"
            )

        return overrides

    @staticmethod
    def recommends_light_position(rationale: str) -> bool:
        text = rationale or ""
        return bool(LIGHT_POSITION_RE.search(text) or LIGHT_SIGNAL_RE.search(text))

    def build_request(self, decision: FusionDecision, regime: MarketRegime) -> ReviewRequest:
        return ReviewRequest(
            symbol=decision.symbol,
            score_b=decision.score_b,
            score_c=decision.score_c,
            final_score=decision.final_score,
            regime=MarketRegime(regime).value,
            direction=decision.direction.value if decision.direction else None,
            context={
                'Suggestion': decision.signal.value,
                'Confidence': decision.confidence.value,
                'Current price': decision.reference_price,
                'Stop loss': decision.stop_loss,
                'Take profit': decision.take_profit,
            },
        )

    async def _call_oracle(
        self,
        request: ReviewRequest,
        cancel_event: Optional[asyncio.Event],
    ) -> RiskVerdict:
        oracle_task = asyncio.ensure_future(self.oracle.review(request))
        waiters = {oracle_task}
        cancel_task = None
        if cancel_event is not None:
            cancel_task = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.config.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            oracle_task.cancel()
            raise
        finally:
            if cancel_task is not None:
                cancel_task.cancel()

        if oracle_task in done:
            return oracle_task.result()

        oracle_task.cancel()
        if cancel_task is not None and cancel_task in done:
            raise ReviewUnavailable("Risk review cancelled", symbol=request.symbol)
        raise ReviewUnavailable(
            f"Risk review timed out after {self.config.timeout_seconds}s", symbol=request.symbol
        )

    async def review(
        self,
        decision: FusionDecision,
        regime: MarketRegime,
        gate: GateResult,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ReviewOutcome:
        """
        Review a fused decision.

        Args:
            decision: Fused decision
            regime: Current market regime
            gate: Gate outcome for the decision
            cancel_event: Set to abandon the oracle call

        Returns:
            ReviewOutcome; approved only if the gate allowed it, the oracle
            approved and no override fired
        """
        regime = MarketRegime(regime)

        if decision.direction is None:
            verdict = RiskVerdict(verdict=Verdict.REJECT, rationale="no signal direction")
            return ReviewOutcome(approved=False, verdict=verdict)

        try:
            verdict = await self._call_oracle(self.build_request(decision, regime), cancel_event)
        except ReviewUnavailable as e:
            self.trading_logger.risk_alert(
                "review_unavailable", "high", f"{decision.symbol}: {e}", symbol=decision.symbol
            )
            verdict = RiskVerdict(verdict=Verdict.REJECT, rationale=REVIEW_UNAVAILABLE)
        except Exception as e:
            logger.exception(f"Oracle failure for {decision.symbol}: {e}")
            verdict = RiskVerdict(verdict=Verdict.REJECT, rationale=REVIEW_UNAVAILABLE)

        overrides = self.deterministic_overrides(decision, regime)
        if self.recommends_light_position(verdict.rationale):
            overrides.append("oracle recommends a light position")
        if not gate.allowed:
            overrides.append(f"gate rejected: {gate.reason}")

        approved = verdict.approved and not overrides
        outcome = ReviewOutcome(approved=approved, verdict=verdict, overrides=overrides)

        if approved:
            logger.info(f"Risk review APPROVED {decision.symbol}: {verdict.rationale}")
        else:
            self.trading_logger.risk_alert(
                "review_rejected", "medium", f"{decision.symbol}: {outcome.reason}",
                symbol=decision.symbol, verdict=verdict.verdict.value,
            )
        return outcome
