"""
Signal Gate - regime-dependent score thresholds.

    RANGING     any direction        >= 0.60
    UPTREND     long (with trend)    >= 0.45
                short (counter)      >= 0.65
    DOWNTREND   short (with trend)   >= 0.45
                long (counter)       >= 0.65
    UNKNOWN     any direction        >= 0.55

A direction named in ``GateConfig.disabled_direction`` is rejected before
any threshold is consulted.
"""

from typing import Optional
import logging

from ..analytics.trend import MarketRegime
from ..config.settings import GateConfig
from .models import Direction, GateResult

logger = logging.getLogger(__name__)


class SignalGate:
    """Deterministic regime gate."""

    def __init__(self, config: Optional[GateConfig] = None):
        self.config = config or GateConfig()

    @property
    def disabled_direction(self) -> Optional[Direction]:
        value = self.config.disabled_direction
        return Direction(value) if value else None

    def threshold_for(self, regime: MarketRegime, direction: Direction) -> float:
        cfg = self.config
        if regime == MarketRegime.RANGING:
            return cfg.ranging_threshold
        if regime == MarketRegime.UPTREND:
            return cfg.with_trend_threshold if direction == Direction.LONG else cfg.counter_trend_threshold
        if regime == MarketRegime.DOWNTREND:
            return cfg.with_trend_threshold if direction == Direction.SHORT else cfg.counter_trend_threshold
        return cfg.unknown_threshold

    def evaluate(
        self,
        regime: MarketRegime,
        direction: Optional[Direction],
        final_score: float,
    ) -> GateResult:
        if direction is None:
            return GateResult(allowed=False, reason="no signal direction", adjusted_score=0.0)

        if direction == self.disabled_direction:
            return GateResult(
                allowed=False,
                reason=f"{direction.value} signals disabled by configuration",
                adjusted_score=0.0,
            )

        regime = MarketRegime(regime)
        threshold = self.threshold_for(regime, direction)
        allowed = final_score >= threshold

        if regime in (MarketRegime.UPTREND, MarketRegime.DOWNTREND):
            with_trend = (regime == MarketRegime.UPTREND) == (direction == Direction.LONG)
            stance = "with trend" if with_trend else "counter-trend"
            label = f"{regime.value} {direction.value} ({stance})"
        else:
            label = f"{regime.value} {direction.value}"

        if allowed:
            reason = f"{label}: score {final_score:.2f} >= {threshold:.2f}"
        else:
            reason = f"{label}: score {final_score:.2f} < {threshold:.2f}"

        logger.debug(f"Gate {'allowed' if allowed else 'rejected'}: {reason}")
        return GateResult(allowed=allowed, reason=reason, adjusted_score=final_score, threshold=threshold)
