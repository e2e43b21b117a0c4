"""
Decision Pipeline - per-symbol evaluation cycle.

Workflow (sequential within a symbol, concurrent across symbols):
1. Volume profile of the window preceding the current bar (the whole
   window including it when exactly one window of bars is supplied)
2. Edge breakout score (score_b)
3. Market condition score (score_c)
4. Fusion -> BUY / SELL / HOLD
5. Trend regime
6. Regime gate
7. Risk review (directional, gated decisions only)
8. Audit event

Missing history, deadline expiry and stage failures resolve to HOLD with a
reason; a cycle never yields a partial action.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from ..analytics.klines import KlineBar
from ..analytics.trend import MarketRegime, TrendStateClassifier
from ..analytics.volume_profile import VolumeDistributionAnalyzer
from ..config.settings import AppConfig
from ..core.events import CycleAudited, EventBus
from ..core.exceptions import DuplicatePosition, EdgeEngineError, InsufficientHistory
from ..position.manager import PositionManager
from ..position.models import Position, PositionSide
from ..utils.logger import get_trading_logger
from .breakout import EdgeBreakoutDetector
from .conditions import ConditionValidator, MarketConditionSnapshot
from .fusion import DecisionFusion
from .gate import SignalGate
from .models import CycleResult, Direction, Signal
from .oracle import ChatCompletionsOracle, RiskOracle
from .risk_review import RiskReviewStage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleInput:
    """Inputs for one symbol's cycle."""
    symbol: str
    bars: Sequence[KlineBar]
    snapshot: MarketConditionSnapshot
    next_bar: Optional[KlineBar] = None


class DecisionPipeline:
    """
    Runs evaluation cycles.

    The pipeline owns its stages; the event bus and position manager are
    injected so several pipelines never share hidden state.
    """

    def __init__(
        self,
        config: AppConfig,
        oracle: RiskOracle,
        event_bus: Optional[EventBus] = None,
        position_manager: Optional[PositionManager] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.position_manager = position_manager

        self.profile_analyzer = VolumeDistributionAnalyzer(config.profile)
        self.breakout_detector = EdgeBreakoutDetector(config.breakout)
        self.condition_validator = ConditionValidator(config.conditions)
        self.fusion = DecisionFusion(config.fusion)
        self.trend_classifier = TrendStateClassifier(config.trend)
        self.gate = SignalGate(config.gate)
        self.review_stage = RiskReviewStage(oracle, config.risk_review)

        self.trading_logger = get_trading_logger(f"{__name__}.DecisionPipeline")
        self.logger = logging.getLogger(f"{__name__}.DecisionPipeline")

    @property
    def required_bars(self) -> int:
        """One profile window; the last bar is the one evaluated."""
        return self.config.profile.window

    async def run_cycle(
        self,
        symbol: str,
        bars: Sequence[KlineBar],
        snapshot: MarketConditionSnapshot,
        next_bar: Optional[KlineBar] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CycleResult:
        """
        Evaluate one symbol under the cycle deadline.

        Args:
            symbol: Instrument
            bars: Ordered bars, the last one being evaluated
            snapshot: Market conditions for this cycle
            next_bar: Following bar when replaying history
            cancel_event: Set to abandon the risk review

        Returns:
            CycleResult; HOLD unless every stage agreed
        """
        started = datetime.now(timezone.utc)
        deadline = self.config.pipeline.cycle_deadline_seconds

        try:
            result = await asyncio.wait_for(
                self._evaluate(symbol, bars, snapshot, next_bar, cancel_event),
                timeout=deadline,
            )
        except asyncio.TimeoutError:
            result = CycleResult(
                symbol=symbol,
                timestamp=started,
                reason=f"cycle deadline of {deadline}s exceeded",
            )
        except InsufficientHistory as e:
            result = CycleResult(symbol=symbol, timestamp=started, reason=str(e))
        except EdgeEngineError as e:
            self.logger.warning(f"{symbol}: cycle aborted: {e}")
            result = CycleResult(symbol=symbol, timestamp=started, reason=f"cycle aborted: {e}")
        except (ValueError, ArithmeticError) as e:
            self.logger.exception(f"{symbol}: cycle failed: {e}")
            result = CycleResult(symbol=symbol, timestamp=started, reason=f"cycle failed: {e}")
        except Exception as e:
            self.logger.exception(f"{symbol}: unexpected stage failure: {e!r}")
            result = CycleResult(symbol=symbol, timestamp=started, reason=f"cycle failed: {e!r}")

        await self._audit(result)
        return result

    async def _evaluate(
        self,
        symbol: str,
        bars: Sequence[KlineBar],
        snapshot: MarketConditionSnapshot,
        next_bar: Optional[KlineBar],
        cancel_event: Optional[asyncio.Event],
    ) -> CycleResult:
        if len(bars) < self.required_bars:
            raise InsufficientHistory(self.required_bars, len(bars), symbol=symbol)

        current = bars[-1]
        history = bars[:-1]
        profile_bars = history if len(history) >= self.config.profile.window else bars

        with self.trading_logger.performance.timer("volume_profile", symbol=symbol):
            profile = self.profile_analyzer.analyze(profile_bars, symbol=symbol)

        breakout = self.breakout_detector.detect(profile, history, current, next_bar)
        conditions = self.condition_validator.validate(breakout.direction, snapshot, symbol=symbol)

        decision = self.fusion.fuse(
            breakout.score_b,
            conditions.score_c,
            breakout.direction,
            reference_price=current.close,
            symbol=symbol,
            timestamp=current.timestamp,
        )
        self.trading_logger.trade_signal(
            symbol, decision.signal.value, decision.final_score,
            score_b=decision.score_b, score_c=decision.score_c,
            confidence=decision.confidence.value,
        )

        trend = self.trend_classifier.classify(bars, symbol=symbol)

        result = CycleResult(
            symbol=symbol,
            timestamp=current.timestamp,
            decision=decision,
            breakout=breakout,
            conditions=conditions,
            regime=trend.regime,
        )

        gate = self.gate.evaluate(trend.regime, breakout.direction, decision.final_score)
        result.gate = gate

        if not decision.is_actionable:
            result.reason = decision.reason
            return result

        if not gate.allowed:
            result.reason = f"gate: {gate.reason}"
            return result

        review = await self.review_stage.review(decision, trend.regime, gate, cancel_event)
        result.review = review

        if review.approved:
            result.signal = decision.signal
            result.reason = f"approved: {review.verdict.rationale}"
        else:
            result.reason = f"review rejected: {review.reason}"

        return result

    async def _audit(self, result: CycleResult):
        decision = result.decision
        audit = CycleAudited(
            timestamp=datetime.now(timezone.utc),
            symbol=result.symbol,
            score_b=decision.score_b if decision else 0.0,
            score_c=decision.score_c if decision else 0.0,
            final_score=decision.final_score if decision else 0.0,
            regime=MarketRegime(result.regime).value,
            signal=result.signal.value,
            confidence=decision.confidence.value if decision else "",
            verdict=result.review.verdict.verdict.value if result.review else None,
            approved=result.approved,
            reason=result.reason,
        )
        self.trading_logger.cycle_audit(audit.to_record())
        if self.event_bus is not None:
            await self.event_bus.publish(audit)

    async def run_all(self, inputs: Sequence[CycleInput]) -> Dict[str, CycleResult]:
        """
        Run cycles for distinct symbols concurrently.

        Raises:
            ValueError: the same symbol appears twice
        """
        symbols = [i.symbol for i in inputs]
        if len(set(symbols)) != len(symbols):
            raise ValueError("Each symbol may appear only once per cycle")

        results: List[CycleResult] = await asyncio.gather(*(
            self.run_cycle(i.symbol, i.bars, i.snapshot, i.next_bar) for i in inputs
        ))
        return {r.symbol: r for r in results}

    async def act(self, result: CycleResult) -> Optional[Position]:
        """
        Open a position for an approved cycle.

        Returns None when the cycle was not approved, no manager is wired, or
        a position is already live for the symbol.
        """
        if not result.approved or self.position_manager is None or result.decision is None:
            return None

        decision = result.decision
        side = PositionSide.LONG if decision.direction == Direction.LONG else PositionSide.SHORT
        size = self.position_manager.size_for(decision.reference_price)

        try:
            return await self.position_manager.open_position(
                result.symbol,
                side,
                size,
                stop_loss=decision.stop_loss,
                take_profit=decision.take_profit,
            )
        except DuplicatePosition as e:
            self.logger.info(f"{result.symbol}: {e}, skipping open")
            return None

    async def run_and_act(self, inputs: Sequence[CycleInput]) -> Dict[str, CycleResult]:
        """run_all, then open positions for approved symbols when auto_open is set."""
        results = await self.run_all(inputs)
        if self.config.pipeline.auto_open:
            for result in results.values():
                if result.signal != Signal.HOLD:
                    await self.act(result)
        return results


def create_default_pipeline(
    config: Optional[AppConfig] = None,
    oracle: Optional[RiskOracle] = None,
    event_bus: Optional[EventBus] = None,
    position_manager: Optional[PositionManager] = None,
) -> DecisionPipeline:
    """
    Factory wiring a pipeline with the chat-completions oracle.

    Args:
        config: Application config (defaults to AppConfig())
        oracle: Oracle override, e.g. a stub in tests
        event_bus: Bus receiving audit and position events
        position_manager: Manager used by ``act``

    Returns:
        Configured DecisionPipeline
    """
    config = config or AppConfig()
    oracle = oracle or ChatCompletionsOracle(config.risk_review)
    return DecisionPipeline(config, oracle, event_bus=event_bus, position_manager=position_manager)
