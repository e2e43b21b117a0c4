"""
Event definitions and an async event bus for position and audit events.

The bus is owned by whoever builds the pipeline; there is no module-level
instance.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Callable, List, Optional
from collections import defaultdict
import asyncio
import logging


logger = logging.getLogger(__name__)


# ============================================================================
# Base Event Classes
# ============================================================================

@dataclass
class Event:
    """Base class for all events."""
    timestamp: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Position Events
# ============================================================================

@dataclass
class PositionOpened(Event):
    """Position opened on the exchange and cached."""
    symbol: str = ""
    side: str = ""
    entry_price: float = 0.0
    size: float = 0.0
    leverage: int = 1
    exchange: str = ""
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None


@dataclass
class PositionClosed(Event):
    """Position closed and its record marked closed."""
    symbol: str = ""
    side: str = ""
    entry_price: float = 0.0
    exit_price: float = 0.0
    size: float = 0.0
    exchange: str = ""
    realized_pnl: float = 0.0
    realized_pnl_pct: float = 0.0
    exit_reason: str = ""


# ============================================================================
# Audit Events
# ============================================================================

@dataclass
class CycleAudited(Event):
    """One evaluation cycle finished; carries the audit record."""
    symbol: str = ""
    score_b: float = 0.0
    score_c: float = 0.0
    final_score: float = 0.0
    regime: str = ""
    signal: str = ""
    confidence: str = ""
    verdict: Optional[str] = None
    approved: bool = False
    reason: str = ""

    def to_record(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'symbol': self.symbol,
            'score_b': self.score_b,
            'score_c': self.score_c,
            'final_score': self.final_score,
            'regime': self.regime,
            'signal': self.signal,
            'confidence': self.confidence,
            'verdict': self.verdict,
            'approved': self.approved,
            'reason': self.reason,
        }


# ============================================================================
# Event Bus
# ============================================================================

class EventBus:
    """
    Event bus for publish-subscribe pattern.

    Subscribers are keyed by event class name and run concurrently; a failing
    subscriber is logged and does not affect the others or the publisher.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(f"{__name__}.EventBus")

    async def subscribe(self, event_type: str, callback: Callable):
        """
        Subscribe to an event type.

        Args:
            event_type: Event class name, e.g. "PositionOpened"
            callback: Async callback receiving the event
        """
        async with self._lock:
            self._subscribers[event_type].append(callback)
            self.logger.debug(f"Subscribed to {event_type}: {callback.__name__}")

    async def unsubscribe(self, event_type: str, callback: Callable):
        async with self._lock:
            if callback in self._subscribers[event_type]:
                self._subscribers[event_type].remove(callback)

    async def publish(self, event: Event):
        """
        Publish an event to all subscribers.

        Args:
            event: Event object to publish
        """
        event_type = event.__class__.__name__

        async with self._lock:
            callbacks = self._subscribers[event_type].copy()

        if not callbacks:
            return

        results = await asyncio.gather(
            *(callback(event) for callback in callbacks),
            return_exceptions=True
        )
        for callback, result in zip(callbacks, results):
            if isinstance(result, Exception):
                self.logger.error(
                    f"Error in subscriber {callback.__name__} for {event_type}: {result}"
                )

    def subscriber_count(self, event_type: str) -> int:
        return len(self._subscribers.get(event_type, []))
