"""
Kline (OHLCV bar) model and timeframe aggregation.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Sequence, Union


@dataclass(frozen=True)
class KlineBar:
    """Immutable OHLCV bar. Timestamps are timezone-aware UTC."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    def __post_init__(self):
        if self.high < self.low:
            raise ValueError(f"Bar high {self.high} below low {self.low}")
        if self.volume < 0:
            raise ValueError(f"Negative bar volume {self.volume}")

    @property
    def price_range(self) -> float:
        return self.high - self.low

    @classmethod
    def from_row(cls, row: Sequence[Union[int, float, str]]) -> "KlineBar":
        """
        Build a bar from an exchange OHLCV row.

        Args:
            row: [timestamp_ms, open, high, low, close, volume]
        """
        ts_ms, o, h, l, c, v = row[:6]
        return cls(
            timestamp=datetime.fromtimestamp(int(ts_ms) / 1000, tz=timezone.utc),
            open=float(o),
            high=float(h),
            low=float(l),
            close=float(c),
            volume=float(v),
        )


def merge_bars(bars: Sequence[KlineBar], factor: int = 2) -> List[KlineBar]:
    """
    Aggregate consecutive bars into a coarser timeframe (1m -> 2m for factor=2).

    A trailing group shorter than ``factor`` is dropped because that bar is
    still forming.
    """
    if factor < 1:
        raise ValueError("factor must be >= 1")
    if factor == 1:
        return list(bars)

    merged: List[KlineBar] = []
    for start in range(0, len(bars) - factor + 1, factor):
        group = bars[start:start + factor]
        merged.append(KlineBar(
            timestamp=group[0].timestamp,
            open=group[0].open,
            high=max(b.high for b in group),
            low=min(b.low for b in group),
            close=group[-1].close,
            volume=sum(b.volume for b in group),
        ))
    return merged
