"""
Volume Distribution Analyzer - VPOC, VAH, VAL over a rolling bar window.

Calculates:
1. VPOC (Volume Point of Control) - centre of the highest-volume price bucket
2. VAH (Value Area High) - top of the bucket range holding 70% of volume
3. VAL (Value Area Low) - bottom of that range
4. Bucket histogram and window volume statistics used by breakout checks
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config.settings import ProfileConfig
from ..core.exceptions import InsufficientHistory
from .indicators import mean_std
from .klines import KlineBar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VolumeProfile:
    """Volume profile result. A pure function of its window; never persisted."""
    vah: float
    val: float
    vpoc: float
    total_volume: float
    value_area_volume: float
    volume_mean: float
    volume_std: float
    distribution_strength: float
    bucket_edges: Tuple[float, ...] = field(default_factory=tuple)
    bucket_volumes: Tuple[float, ...] = field(default_factory=tuple)
    vpoc_index: int = 0
    bar_count: int = 0
    symbol: str = ""

    @property
    def value_area_pct(self) -> float:
        if self.total_volume <= 0:
            return 0.0
        return self.value_area_volume / self.total_volume


class VolumeDistributionAnalyzer:
    """
    Volume Distribution Analyzer - Calculates VPOC, VAH, VAL.

    Calculation Process:
    1. Split [min low, max high] of the window into fixed-width buckets
    2. Spread each bar's volume over the buckets its [low, high] overlaps,
       proportionally to the overlap length
    3. VPOC = centre of the max-volume bucket (lowest bucket on ties)
    4. Grow the value area from VPOC, one adjacent bucket at a time, taking
       the side with more volume (upward on an exact tie), until 70% of the
       total volume is enclosed or no buckets remain
    5. VAL = lower edge of lowest included bucket, VAH = upper edge of highest
    """

    def __init__(self, config: Optional[ProfileConfig] = None):
        self.config = config or ProfileConfig()
        logger.info(
            f"VolumeDistributionAnalyzer initialized - "
            f"window={self.config.window}, buckets={self.config.bucket_count}, "
            f"value_area={self.config.value_area_pct * 100:.0f}%"
        )

    @property
    def window(self) -> int:
        return self.config.window

    def analyze(self, bars: Sequence[KlineBar], symbol: str = "") -> VolumeProfile:
        """
        Build the volume profile of the trailing window.

        Args:
            bars: Ordered bars, oldest first; the trailing ``window`` are used
            symbol: Instrument, for logging and errors

        Returns:
            VolumeProfile

        Raises:
            InsufficientHistory: fewer than ``window`` bars supplied
        """
        window = self.config.window
        if len(bars) < window:
            raise InsufficientHistory(window, len(bars), symbol=symbol or None)

        window_bars = bars[-window:]
        lows = np.array([b.low for b in window_bars], dtype=float)
        highs = np.array([b.high for b in window_bars], dtype=float)
        volumes = np.array([b.volume for b in window_bars], dtype=float)

        total_volume = float(volumes.sum())
        volume_mean, volume_std = mean_std(volumes)

        price_min = float(lows.min())
        price_max = float(highs.max())

        if price_max <= price_min:
            # Every bar traded at one price
            return VolumeProfile(
                vah=price_min,
                val=price_min,
                vpoc=price_min,
                total_volume=total_volume,
                value_area_volume=total_volume,
                volume_mean=volume_mean,
                volume_std=volume_std,
                distribution_strength=1.0 if total_volume > 0 else 0.0,
                bucket_edges=(price_min, price_max),
                bucket_volumes=(total_volume,),
                vpoc_index=0,
                bar_count=len(window_bars),
                symbol=symbol,
            )

        edges, bucket_volumes = self._build_histogram(lows, highs, volumes, price_min, price_max)

        vpoc_index = int(np.argmax(bucket_volumes))
        vpoc = float((edges[vpoc_index] + edges[vpoc_index + 1]) / 2)

        low_index, high_index, value_area_volume = self._calculate_value_area(
            bucket_volumes, vpoc_index, total_volume
        )

        non_empty = bucket_volumes[bucket_volumes > 0]
        distribution_strength = (
            float(bucket_volumes[vpoc_index] / non_empty.mean()) if non_empty.size else 0.0
        )

        profile = VolumeProfile(
            vah=float(edges[high_index + 1]),
            val=float(edges[low_index]),
            vpoc=vpoc,
            total_volume=total_volume,
            value_area_volume=value_area_volume,
            volume_mean=volume_mean,
            volume_std=volume_std,
            distribution_strength=distribution_strength,
            bucket_edges=tuple(float(e) for e in edges),
            bucket_volumes=tuple(float(v) for v in bucket_volumes),
            vpoc_index=vpoc_index,
            bar_count=len(window_bars),
            symbol=symbol,
        )

        logger.debug(
            f"Volume profile for {symbol or '?'}: "
            f"VPOC={profile.vpoc:.4f}, VAH={profile.vah:.4f}, VAL={profile.val:.4f}, "
            f"value_area={profile.value_area_pct * 100:.1f}%"
        )
        return profile

    def _build_histogram(
        self,
        lows: np.ndarray,
        highs: np.ndarray,
        volumes: np.ndarray,
        price_min: float,
        price_max: float,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Spread bar volumes over fixed buckets by overlap length."""
        n = self.config.bucket_count
        width = (price_max - price_min) / n
        edges = price_min + width * np.arange(n + 1, dtype=float)
        edges[-1] = price_max

        bucket_volumes = np.zeros(n, dtype=float)

        for low, high, volume in zip(lows, highs, volumes):
            if volume <= 0:
                continue

            first = min(int((low - price_min) / width), n - 1)
            if high == low:
                bucket_volumes[first] += volume
                continue

            last = min(int((high - price_min) / width), n - 1)
            span = high - low
            for i in range(first, last + 1):
                overlap = min(high, edges[i + 1]) - max(low, edges[i])
                if overlap > 0:
                    bucket_volumes[i] += volume * overlap / span

        return edges, bucket_volumes

    def _calculate_value_area(
        self,
        bucket_volumes: np.ndarray,
        vpoc_index: int,
        total_volume: float,
    ) -> Tuple[int, int, float]:
        """
        Expand from the VPOC bucket until the value-area share is reached.

        Returns:
            (lowest bucket index, highest bucket index, enclosed volume)
        """
        target_volume = total_volume * self.config.value_area_pct
        n = len(bucket_volumes)

        low_index = high_index = vpoc_index
        accumulated = float(bucket_volumes[vpoc_index])

        while accumulated < target_volume:
            can_go_up = high_index + 1 < n
            can_go_down = low_index - 1 >= 0
            if not can_go_up and not can_go_down:
                break

            upper_volume = bucket_volumes[high_index + 1] if can_go_up else -1.0
            lower_volume = bucket_volumes[low_index - 1] if can_go_down else -1.0

            # Only a strictly larger lower bucket pulls the area down
            if lower_volume > upper_volume:
                low_index -= 1
                accumulated += float(lower_volume)
            else:
                high_index += 1
                accumulated += float(upper_volume)

        return low_index, high_index, accumulated
