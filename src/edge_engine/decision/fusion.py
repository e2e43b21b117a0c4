"""
Decision Fusion - combines breakout and condition scores into an action.

    final = 0.6 * score_b + 0.4 * score_c

    | final              | direction | signal      | confidence |
    |--------------------|-----------|-------------|------------|
    | >= 0.78            | long      | BUY         | HIGH       |
    | >= 0.78            | short     | SELL        | HIGH       |
    | [0.65, 0.78)       | any       | HOLD        | MEDIUM     |
    | < 0.65             | any       | HOLD        | LOW        |
    | any                | none      | HOLD        | LOW        |

Stop-loss / take-profit sit 0.6% / 1.2% from the reference price on the
losing / winning side of the direction.
"""

from datetime import datetime, timezone
from typing import Optional, Tuple
import logging

from ..config.settings import FusionConfig
from .models import Confidence, Direction, FusionDecision, Signal

logger = logging.getLogger(__name__)


class DecisionFusion:
    """Pure fusion of score_b and score_c."""

    def __init__(self, config: Optional[FusionConfig] = None):
        self.config = config or FusionConfig()

    def final_score(self, score_b: float, score_c: float) -> float:
        for name, value in (("score_b", score_b), ("score_c", score_c)):
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        return self.config.breakout_weight * score_b + self.config.condition_weight * score_c

    def protective_levels(
        self,
        direction: Direction,
        reference_price: float,
    ) -> Tuple[float, float]:
        """(stop_loss, take_profit) for the direction around the reference price."""
        sl_pct = self.config.stop_loss_pct
        tp_pct = self.config.take_profit_pct
        if direction == Direction.LONG:
            return reference_price * (1 - sl_pct), reference_price * (1 + tp_pct)
        return reference_price * (1 + sl_pct), reference_price * (1 - tp_pct)

    def fuse(
        self,
        score_b: float,
        score_c: float,
        direction: Optional[Direction],
        reference_price: Optional[float] = None,
        symbol: str = "",
        timestamp: Optional[datetime] = None,
    ) -> FusionDecision:
        """
        Fuse the two scores.

        Raises:
            ValueError: a score outside [0, 1]
        """
        final = self.final_score(score_b, score_c)
        cfg = self.config

        if direction is not None and final >= cfg.signal_floor:
            signal = Signal.BUY if direction == Direction.LONG else Signal.SELL
            confidence = Confidence.HIGH
            reason = f"final {final:.3f} >= {cfg.signal_floor}"
        elif direction is None:
            signal = Signal.HOLD
            confidence = Confidence.LOW
            reason = "no breakout direction"
        elif final >= cfg.medium_floor:
            signal = Signal.HOLD
            confidence = Confidence.MEDIUM
            reason = f"final {final:.3f} below signal floor {cfg.signal_floor}"
        else:
            signal = Signal.HOLD
            confidence = Confidence.LOW
            reason = f"final {final:.3f} below {cfg.medium_floor}"

        stop_loss = take_profit = None
        if direction is not None and reference_price is not None:
            stop_loss, take_profit = self.protective_levels(direction, reference_price)

        decision = FusionDecision(
            symbol=symbol,
            timestamp=timestamp or datetime.now(timezone.utc),
            score_b=score_b,
            score_c=score_c,
            final_score=final,
            signal=signal,
            confidence=confidence,
            direction=direction,
            reference_price=reference_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            reason=reason,
        )

        logger.debug(
            f"Fusion {symbol or '?'}: B={score_b:.3f} C={score_c:.3f} "
            f"final={final:.3f} -> {signal.value}/{confidence.value}"
        )
        return decision
