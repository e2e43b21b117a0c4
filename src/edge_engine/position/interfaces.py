"""
Collaborator interfaces for the position manager.

The exchange is the source of truth for live exposure; the store holds the
position records that authorise a close.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Union

from .models import ExitReason, Position, PositionSide, PositionState


class ExchangeGateway(ABC):
    """
    Abstract exchange connectivity used by the position manager.

    Symbols passed in are already in the exchange's own spelling.
    """

    @abstractmethod
    async def open_position(
        self,
        symbol: str,
        side: PositionSide,
        size: float,
        leverage: int,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> Position:
        """
        Open a position at market.

        Returns:
            The filled position (entry price as executed)
        """

    @abstractmethod
    async def close_position(self, symbol: str, side: PositionSide, size: float) -> float:
        """
        Close a position at market.

        Returns:
            Exit price
        """

    @abstractmethod
    async def get_position(self, symbol: str) -> Optional[Position]:
        """Live position on the exchange, or None."""


class PositionStore(ABC):
    """Persistent position records."""

    @abstractmethod
    async def get_open_position(self, symbol: str) -> Optional[Position]:
        """Open record for the canonical symbol, or None."""

    @abstractmethod
    async def get_open_positions(self) -> List[Position]:
        """All open records."""

    @abstractmethod
    async def save_position(self, position: Position) -> None:
        """Persist a newly opened position."""

    @abstractmethod
    async def mark_closed(self, symbol: str, exit_price: float, reason: Union[ExitReason, str]) -> Optional[Position]:
        """Mark the open record closed and return it."""


class InMemoryPositionStore(PositionStore):
    """Process-local store, for tests and dry runs."""

    def __init__(self):
        self._open: Dict[str, Position] = {}
        self.history: List[Position] = []

    async def get_open_position(self, symbol: str) -> Optional[Position]:
        return self._open.get(symbol)

    async def get_open_positions(self) -> List[Position]:
        return list(self.open_positions.values())

    async def save_position(self, position: Position) -> None:
        self._open[position.symbol] = position

    async def mark_closed(self, symbol: str, exit_price: float, reason: Union[ExitReason, str]) -> Optional[Position]:
        position = self._open.pop(symbol, None)
        if position is None:
            return None
        position.mark_closed(exit_price, reason)
        self.history.append(position)
        return position

    @property
    def open_positions(self) -> Dict[str, Position]:
        return {s: p for s, p in self._open.items() if p.state == PositionState.OPEN}
