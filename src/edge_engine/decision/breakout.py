"""
Edge Breakout Detector - weighted volume checks at the value-area edges.

Each check is independent and contributes its weight only when it passes:

    P1 edge position        0.25   price just below VAL (long) / above VAH (short)
    P2 local volume z       0.20   z over the previous 20 bars > 2.3
    P3 global volume z      0.15   z over the profile window > 2.0
    P4 bar-over-bar burst   0.20   V_t / V_t-1 > 2.2
    P5 short-average burst  0.10   V_t / mean(previous 5) > 1.9
    P6 distribution         0.05   VPOC bucket / mean bucket > 1.3
    P7 continuation         0.03   V_t+1 > 0.6 * V_t (replay only)
    P8 session              0.02   UTC session weight >= 1.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timezone
from typing import List, Optional, Sequence
import logging

from ..analytics.indicators import mean_std, safe_ratio, zscore
from ..analytics.klines import KlineBar
from ..analytics.volume_profile import VolumeProfile
from ..config.settings import BreakoutConfig
from .models import BreakoutSignal, CheckResult, Direction

logger = logging.getLogger(__name__)


# UTC hour ranges -> session weight
SESSION_WEIGHTS = (
    (0, 8, 0.8),     # night
    (8, 16, 1.2),    # Asia
    (16, 24, 1.0),   # EU / US
)


def session_weight(bar: KlineBar) -> float:
    """Session weight for the UTC hour of the bar."""
    ts = bar.timestamp
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    for start, end, weight in SESSION_WEIGHTS:
        if start <= ts.hour < end:
            return weight
    return 1.0


@dataclass(frozen=True)
class BreakoutContext:
    """Inputs shared by every check for one bar."""
    profile: VolumeProfile
    history: Sequence[KlineBar]
    current: KlineBar
    next_bar: Optional[KlineBar]
    direction: Optional[Direction]

    @property
    def price(self) -> float:
        return self.current.close

    @property
    def volume(self) -> float:
        return self.current.volume


class BreakoutCheck(ABC):
    """
    Base class for weighted breakout checks.

    A check returns a CheckResult whose contribution is either 0 or its
    weight; partial credit is never given.
    """

    def __init__(self, weight: float, name: Optional[str] = None):
        self.weight = weight
        self.name = name or self.__class__.__name__
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    @abstractmethod
    def evaluate(self, ctx: BreakoutContext) -> CheckResult:
        """Evaluate the check for the current bar."""

    def result(self, passed: bool, value: Optional[float] = None, reason: str = "") -> CheckResult:
        self.logger.debug(
            f"{self.name}: {'pass' if passed else 'fail'} "
            f"({self.weight if passed else 0.0:.2f}/{self.weight:.2f}) {reason}"
        )
        return CheckResult(name=self.name, passed=passed, weight=self.weight, value=value, reason=reason)


class EdgePositionCheck(BreakoutCheck):
    """P1: price inside the band just outside VAL or VAH."""

    def __init__(self, weight: float, band_pct: float):
        super().__init__(weight, name="edge_position")
        self.band_pct = band_pct

    def direction_for(self, profile: VolumeProfile, price: float) -> Optional[Direction]:
        if profile.val * (1 - self.band_pct) <= price <= profile.val:
            return Direction.LONG
        if profile.vah <= price <= profile.vah * (1 + self.band_pct):
            return Direction.SHORT
        return None

    def evaluate(self, ctx: BreakoutContext) -> CheckResult:
        direction = self.direction_for(ctx.profile, ctx.price)
        if direction is None:
            return self.result(
                False, ctx.price,
                f"price {ctx.price:.4f} outside edge bands of [{ctx.profile.val:.4f}, {ctx.profile.vah:.4f}]"
            )
        edge = ctx.profile.val if direction == Direction.LONG else ctx.profile.vah
        return self.result(True, ctx.price, f"{direction.value} edge at {edge:.4f}")


class LocalVolumeZCheck(BreakoutCheck):
    """P2: current volume z-score against the recent bars."""

    def __init__(self, weight: float, lookback: int, threshold: float):
        super().__init__(weight, name="local_volume_z")
        self.lookback = lookback
        self.threshold = threshold

    def evaluate(self, ctx: BreakoutContext) -> CheckResult:
        if len(ctx.history) < self.lookback:
            return self.result(False, None, f"need {self.lookback} prior bars")
        recent = [b.volume for b in ctx.history[-self.lookback:]]
        z = zscore(ctx.volume, recent)
        return self.result(z > self.threshold, z, f"z={z:.2f} vs {self.threshold}")


class GlobalVolumeZCheck(BreakoutCheck):
    """P3: current volume z-score against the whole profile window."""

    def __init__(self, weight: float, threshold: float):
        super().__init__(weight, name="global_volume_z")
        self.threshold = threshold

    def evaluate(self, ctx: BreakoutContext) -> CheckResult:
        std = ctx.profile.volume_std
        z = (ctx.volume - ctx.profile.volume_mean) / std if std > 0 else 0.0
        return self.result(z > self.threshold, z, f"z={z:.2f} vs {self.threshold}")


class PreviousBarRatioCheck(BreakoutCheck):
    """P4: volume burst over the previous bar."""

    def __init__(self, weight: float, threshold: float):
        super().__init__(weight, name="prev_bar_ratio")
        self.threshold = threshold

    def evaluate(self, ctx: BreakoutContext) -> CheckResult:
        if not ctx.history:
            return self.result(False, None, "no previous bar")
        ratio = safe_ratio(ctx.volume, ctx.history[-1].volume)
        return self.result(ratio > self.threshold, ratio, f"ratio={ratio:.2f} vs {self.threshold}")


class ShortAverageRatioCheck(BreakoutCheck):
    """P5: volume burst over the short moving average."""

    def __init__(self, weight: float, lookback: int, threshold: float):
        super().__init__(weight, name="short_avg_ratio")
        self.lookback = lookback
        self.threshold = threshold

    def evaluate(self, ctx: BreakoutContext) -> CheckResult:
        if len(ctx.history) < self.lookback:
            return self.result(False, None, f"need {self.lookback} prior bars")
        mean, _ = mean_std([b.volume for b in ctx.history[-self.lookback:]])
        ratio = safe_ratio(ctx.volume, mean)
        return self.result(ratio > self.threshold, ratio, f"ratio={ratio:.2f} vs {self.threshold}")


class DistributionStrengthCheck(BreakoutCheck):
    """P6: how concentrated the profile is around its VPOC."""

    def __init__(self, weight: float, threshold: float):
        super().__init__(weight, name="distribution_strength")
        self.threshold = threshold

    def evaluate(self, ctx: BreakoutContext) -> CheckResult:
        strength = ctx.profile.distribution_strength
        return self.result(strength > self.threshold, strength, f"strength={strength:.2f} vs {self.threshold}")


class ContinuationCheck(BreakoutCheck):
    """P7: next bar keeps participating. Only evaluable on replayed data."""

    def __init__(self, weight: float, ratio: float):
        super().__init__(weight, name="continuation")
        self.ratio = ratio

    def evaluate(self, ctx: BreakoutContext) -> CheckResult:
        if ctx.next_bar is None:
            return self.result(False, None, "skipped: next bar unknown")
        ratio = safe_ratio(ctx.next_bar.volume, ctx.volume)
        return self.result(ratio > self.ratio, ratio, f"next/current={ratio:.2f} vs {self.ratio}")


class SessionCheck(BreakoutCheck):
    """P8: bar falls in an active trading session."""

    def __init__(self, weight: float):
        super().__init__(weight, name="session")

    def evaluate(self, ctx: BreakoutContext) -> CheckResult:
        weight = session_weight(ctx.current)
        return self.result(weight >= 1.0, weight, f"session weight {weight}")


class EdgeBreakoutDetector:
    """
    Scores a bar against the volume profile.

    With ``require_edge`` (default), a bar that is not at a value-area edge
    scores 0 with no direction and the remaining checks are not run.
    """

    def __init__(self, config: Optional[BreakoutConfig] = None):
        self.config = config or BreakoutConfig()
        cfg = self.config

        self.edge_check = EdgePositionCheck(cfg.edge_weight, cfg.edge_band_pct)
        self.checks: List[BreakoutCheck] = [
            LocalVolumeZCheck(cfg.local_z_weight, cfg.local_lookback, cfg.local_z_threshold),
            GlobalVolumeZCheck(cfg.global_z_weight, cfg.global_z_threshold),
            PreviousBarRatioCheck(cfg.prev_ratio_weight, cfg.prev_ratio_threshold),
            ShortAverageRatioCheck(cfg.short_avg_weight, cfg.short_lookback, cfg.short_avg_ratio_threshold),
            DistributionStrengthCheck(cfg.distribution_weight, cfg.distribution_strength_threshold),
            ContinuationCheck(cfg.continuation_weight, cfg.continuation_ratio),
            SessionCheck(cfg.session_weight),
        ]

        self.max_possible_score = self.edge_check.weight + sum(c.weight for c in self.checks)

    def detect(
        self,
        profile: VolumeProfile,
        history: Sequence[KlineBar],
        current: KlineBar,
        next_bar: Optional[KlineBar] = None,
    ) -> BreakoutSignal:
        """
        Score the current bar.

        Args:
            profile: Profile built from the bars preceding ``current``
            history: Bars preceding ``current``, oldest first
            current: Bar being evaluated
            next_bar: Following bar when replaying history

        Returns:
            BreakoutSignal with score_b in [0, 1]
        """
        direction = self.edge_check.direction_for(profile, current.close)
        ctx = BreakoutContext(profile, history, current, next_bar, direction)
        edge_result = self.edge_check.evaluate(ctx)

        if direction is None and self.config.require_edge:
            return BreakoutSignal(direction=None, score_b=0.0, checks=[edge_result])

        if direction is None:
            direction = Direction.LONG if current.close < profile.vpoc else Direction.SHORT
            ctx = BreakoutContext(profile, history, current, next_bar, direction)

        results = [edge_result] + [check.evaluate(ctx) for check in self.checks]
        score = min(max(sum(r.contribution for r in results), 0.0), 1.0)

        signal = BreakoutSignal(direction=direction, score_b=score, checks=results)
        logger.debug(
            f"Breakout {profile.symbol or '?'} {direction.value}: "
            f"score_b={score:.3f} passed={signal.passed_checks}"
        )
        return signal
