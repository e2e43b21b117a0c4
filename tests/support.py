"""
Test doubles and data builders shared by the test suite.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from edge_engine.analytics.klines import KlineBar
from edge_engine.decision.models import RiskVerdict, Verdict
from edge_engine.decision.oracle import ReviewRequest, RiskOracle
from edge_engine.position.interfaces import ExchangeGateway
from edge_engine.position.models import Position, PositionSide


BASE_TIME = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


def make_bar(
    low: float,
    high: float,
    volume: float,
    close: Optional[float] = None,
    timestamp: Optional[datetime] = None,
) -> KlineBar:
    close = (low + high) / 2 if close is None else close
    return KlineBar(
        timestamp=timestamp or BASE_TIME,
        open=close,
        high=high,
        low=low,
        close=close,
        volume=volume,
    )


def build_ladder_history() -> List[KlineBar]:
    """
    720 bars cycling through ten 1.0-wide price levels starting at 100.

    Bars 0-99 trade 1000 each; afterwards even bars trade 100 and odd bars
    200. With 10 buckets: odd levels hold 22400, even levels 16200, total
    193000, VPOC 101.5, value area [101.0, 108.0].
    """
    bars = []
    for i in range(720):
        level = 100.0 + (i % 10)
        if i < 100:
            volume = 1000.0
        else:
            volume = 100.0 if i % 2 == 0 else 200.0
        bars.append(make_bar(level, level + 1.0, volume, timestamp=BASE_TIME + timedelta(minutes=2 * i)))
    return bars


# ============================================================================
# Oracles
# ============================================================================

class StubOracle(RiskOracle):
    """Returns a fixed verdict and records requests."""

    def __init__(self, verdict: Verdict = Verdict.APPROVE, rationale: str = "signal is clean", delay: float = 0.0):
        self.verdict = verdict
        self.rationale = rationale
        self.delay = delay
        self.requests: List[ReviewRequest] = []

    async def review(self, request: ReviewRequest) -> RiskVerdict:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        return RiskVerdict(verdict=self.verdict, rationale=self.rationale)


class FailingOracle(RiskOracle):
    """Raises the given exception on every call."""

    def __init__(self, error: Exception):
        self.error = error
        self.calls = 0

    async def review(self, request: ReviewRequest) -> RiskVerdict:
        self.calls += 1
        raise self.error


# ============================================================================
# Exchange / clock
# ============================================================================

class FakeExchange(ExchangeGateway):
    """In-memory exchange that fills at ``price``."""

    def __init__(self, price: float = 100.0, latency: float = 0.0):
        self.price = price
        self.latency = latency
        self.positions: Dict[str, Position] = {}
        self.open_calls: List[str] = []
        self.close_calls: List[str] = []
        self.get_calls: List[str] = []

    async def open_position(self, symbol, side, size, leverage, stop_loss=None, take_profit=None):
        self.open_calls.append(symbol)
        if self.latency:
            await asyncio.sleep(self.latency)
        position = Position(
            symbol=symbol,
            side=PositionSide(side),
            size=size,
            entry_price=self.price,
            leverage=leverage,
            exchange="fake",
        )
        self.positions[symbol] = position
        return position

    async def close_position(self, symbol, side, size):
        self.close_calls.append(symbol)
        if self.latency:
            await asyncio.sleep(self.latency)
        self.positions.pop(symbol, None)
        return self.price

    async def get_position(self, symbol):
        self.get_calls.append(symbol)
        return self.positions.get(symbol)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds
