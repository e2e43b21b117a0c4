"""
Position data models.

This module defines the Position dataclass and related enums for tracking
live exposure between the exchange, the persistent store and the cache.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union


class PositionState(str, Enum):
    """Position lifecycle states."""
    OPEN = "open"
    CLOSED = "closed"


class PositionSide(str, Enum):
    """Position side (long or short)."""
    LONG = "long"
    SHORT = "short"


class ExitReason(str, Enum):
    """Reason for position exit."""
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    MANUAL = "manual"
    RECONCILIATION = "reconciliation"


def coerce_exit_reason(reason: Union[ExitReason, str]) -> Union[ExitReason, str]:
    """
    Known reasons become ExitReason members; other non-empty strings such as
    "quick_take_profit" are kept verbatim.
    """
    try:
        return ExitReason(reason)
    except ValueError:
        if isinstance(reason, str) and reason.strip():
            return reason.strip()
        raise ValueError(f"Invalid exit reason: {reason!r}")


def exit_reason_value(reason: Union[ExitReason, str]) -> str:
    return reason.value if isinstance(reason, ExitReason) else reason


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Position:
    """
    Represents a trading position.

    ``symbol`` is always the canonical BASE/QUOTE form; exchange spellings
    are produced by the manager at the boundary.
    """

    symbol: str
    side: PositionSide
    size: float
    entry_price: float
    leverage: int = 1
    exchange: str = ""
    state: PositionState = PositionState.OPEN

    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    current_price: Optional[float] = None

    opened_at: datetime = field(default_factory=_utcnow)
    closed_at: Optional[datetime] = None
    exit_price: Optional[float] = None
    exit_reason: Optional[Union[ExitReason, str]] = None
    realized_pnl: Optional[float] = None

    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.state == PositionState.OPEN

    @property
    def notional(self) -> float:
        return self.entry_price * self.size

    @property
    def margin(self) -> float:
        return self.notional / self.leverage if self.leverage else self.notional

    def pnl_at(self, price: float) -> float:
        """PnL in quote currency if the position were closed at ``price``."""
        if self.side == PositionSide.LONG:
            return (price - self.entry_price) * self.size
        return (self.entry_price - price) * self.size

    def pnl_pct_at(self, price: float) -> float:
        """PnL as a percentage of committed margin."""
        if self.margin <= 0:
            return 0.0
        return self.pnl_at(price) / self.margin * 100

    @property
    def unrealized_pnl(self) -> float:
        if self.current_price is None:
            return 0.0
        return self.pnl_at(self.current_price)

    def mark_closed(self, exit_price: float, reason: Union[ExitReason, str]) -> None:
        self.state = PositionState.CLOSED
        self.exit_price = exit_price
        self.exit_reason = reason
        self.closed_at = _utcnow()
        self.realized_pnl = self.pnl_at(exit_price)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'side': PositionSide(self.side).value,
            'size': self.size,
            'entry_price': self.entry_price,
            'leverage': self.leverage,
            'exchange': self.exchange,
            'state': PositionState(self.state).value,
            'stop_loss': self.stop_loss,
            'take_profit': self.take_profit,
            'current_price': self.current_price,
            'unrealized_pnl': self.unrealized_pnl,
            'opened_at': self.opened_at.isoformat(),
            'closed_at': self.closed_at.isoformat() if self.closed_at else None,
            'exit_price': self.exit_price,
            'exit_reason': exit_reason_value(self.exit_reason) if self.exit_reason else None,
            'realized_pnl': self.realized_pnl,
        }
