"""
Position Monitor - closes open positions whose stop loss or take profit
has been crossed.

Prices come from an injected async feed; closes go through
PositionManager.close_position so they take the per-symbol lock, update
the store and publish PositionClosed like any other close.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from ..core.exceptions import PositionNotFound
from .manager import PositionManager, normalize_symbol
from .models import ExitReason, Position, PositionSide


logger = logging.getLogger(__name__)


PriceFeed = Callable[[Sequence[str]], Awaitable[Dict[str, float]]]


def exit_reason_for(position: Position, price: float) -> Optional[ExitReason]:
    """
    Protective level crossed at ``price``, or None.

    Long: price <= stop loss, price >= take profit. Short: mirrored.
    Touching a level counts as crossing it; the stop loss wins if both match.
    """
    if position.side == PositionSide.LONG:
        if position.stop_loss is not None and price <= position.stop_loss:
            return ExitReason.STOP_LOSS
        if position.take_profit is not None and price >= position.take_profit:
            return ExitReason.TAKE_PROFIT
    else:
        if position.stop_loss is not None and price >= position.stop_loss:
            return ExitReason.STOP_LOSS
        if position.take_profit is not None and price <= position.take_profit:
            return ExitReason.TAKE_PROFIT
    return None


class PositionMonitor:
    """
    Stop loss / take profit watcher for recorded positions.

    ``check_prices`` is one pass; ``start`` runs it every
    ``monitor_interval_seconds`` against ``price_feed``.
    """

    def __init__(
        self,
        manager: PositionManager,
        price_feed: Optional[PriceFeed] = None,
        interval_seconds: Optional[float] = None,
    ):
        self.manager = manager
        self.price_feed = price_feed
        self.interval_seconds = (
            manager.config.monitor_interval_seconds if interval_seconds is None else interval_seconds
        )
        self.logger = logging.getLogger(f"{__name__}.PositionMonitor")

        self.is_running = False
        self.monitoring_task: Optional[asyncio.Task] = None

    async def check_prices(self, prices: Dict[str, float]) -> List[Position]:
        """
        Close every open record whose protective level is crossed.

        Args:
            prices: Last price per symbol, any accepted spelling

        Returns:
            Positions closed in this pass
        """
        latest = {normalize_symbol(s): p for s, p in prices.items()}
        closed: List[Position] = []

        for position in await self.manager.get_all_positions():
            price = latest.get(position.symbol)
            if price is None:
                continue

            position.current_price = price
            reason = exit_reason_for(position, price)
            if reason is None:
                continue

            self.logger.warning(
                f"{position.symbol}: {reason.value} hit at {price} "
                f"(SL={position.stop_loss}, TP={position.take_profit})"
            )
            try:
                closed.append(await self.manager.close_position(position.symbol, reason))
            except PositionNotFound:
                # closed by another task since the records were listed
                self.logger.info(f"{position.symbol}: already closed")

        return closed

    async def check_once(self) -> List[Position]:
        """Fetch prices for open records from the feed and check them."""
        if self.price_feed is None:
            raise RuntimeError("PositionMonitor has no price feed")

        positions = await self.manager.get_all_positions()
        if not positions:
            return []

        prices = await self.price_feed([p.symbol for p in positions])
        return await self.check_prices(prices)

    async def start(self):
        """Start the periodic check loop."""
        if self.price_feed is None:
            raise RuntimeError("PositionMonitor has no price feed")
        self.is_running = True
        self.monitoring_task = asyncio.create_task(self._monitoring_loop())
        self.logger.info(f"Position Monitor started (every {self.interval_seconds}s)")

    async def stop(self):
        """Stop the loop and wait for it to finish."""
        self.is_running = False
        if self.monitoring_task:
            self.monitoring_task.cancel()
            try:
                await self.monitoring_task
            except asyncio.CancelledError:
                pass
            self.monitoring_task = None
        self.logger.info("Position Monitor stopped")

    async def _monitoring_loop(self):
        while self.is_running:
            try:
                await self.check_once()
            except Exception as e:
                self.logger.error(f"Error in monitoring loop: {e}")
            await asyncio.sleep(self.interval_seconds)
