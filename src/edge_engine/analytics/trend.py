"""
Trend state classification from an EMA 20/50/100 stack.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from ..config.settings import TrendConfig
from ..core.exceptions import InsufficientHistory
from .indicators import calculate_ema
from .klines import KlineBar

logger = logging.getLogger(__name__)


class MarketRegime(str, Enum):
    """Market regime."""
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    RANGING = "RANGING"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class TrendState:
    """Regime plus the EMA values it was derived from."""
    regime: MarketRegime
    ema_fast: Optional[float] = None
    ema_mid: Optional[float] = None
    ema_slow: Optional[float] = None
    gap: float = 0.0
    strength: float = 0.0


class TrendStateClassifier:
    """
    Classifies the regime from the trailing ``slow_period`` closes.

    UPTREND when EMA20 > EMA50 > EMA100 and |EMA20 - EMA50| / EMA50 exceeds
    the minimum gap; DOWNTREND for the mirrored stack; RANGING otherwise.
    Fewer bars than the slow period yields UNKNOWN.
    """

    def __init__(self, config: Optional[TrendConfig] = None):
        self.config = config or TrendConfig()

    @property
    def required_bars(self) -> int:
        return self.config.slow_period

    def require(self, bars: Sequence[KlineBar], symbol: str = "") -> TrendState:
        """Like classify, but raises InsufficientHistory instead of UNKNOWN."""
        if len(bars) < self.required_bars:
            raise InsufficientHistory(self.required_bars, len(bars), symbol=symbol or None)
        return self.classify(bars, symbol)

    def classify(self, bars: Sequence[KlineBar], symbol: str = "") -> TrendState:
        cfg = self.config
        if len(bars) < cfg.slow_period:
            logger.debug(
                f"Trend UNKNOWN for {symbol or '?'}: {len(bars)}/{cfg.slow_period} bars"
            )
            return TrendState(regime=MarketRegime.UNKNOWN)

        closes = [b.close for b in bars[-cfg.slow_period:]]
        ema_fast = calculate_ema(closes, cfg.fast_period)
        ema_mid = calculate_ema(closes, cfg.mid_period)
        ema_slow = calculate_ema(closes, cfg.slow_period)

        gap = abs(ema_fast - ema_mid) / ema_mid if ema_mid else 0.0
        strength = self.trend_strength(gap)

        if ema_fast > ema_mid > ema_slow and gap > cfg.min_gap_pct:
            regime = MarketRegime.UPTREND
        elif ema_fast < ema_mid < ema_slow and gap > cfg.min_gap_pct:
            regime = MarketRegime.DOWNTREND
        else:
            regime = MarketRegime.RANGING

        logger.debug(
            f"Trend {regime.value} for {symbol or '?'}: "
            f"EMA{cfg.fast_period}={ema_fast:.4f} EMA{cfg.mid_period}={ema_mid:.4f} "
            f"EMA{cfg.slow_period}={ema_slow:.4f} gap={gap * 100:.3f}%"
        )

        return TrendState(
            regime=regime,
            ema_fast=ema_fast,
            ema_mid=ema_mid,
            ema_slow=ema_slow,
            gap=gap,
            strength=strength,
        )

    def trend_strength(self, gap: float) -> float:
        """min(gap / saturation gap, 1)."""
        return min(gap / self.config.strength_scale_pct, 1.0)
