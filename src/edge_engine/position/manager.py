"""
Position Manager - keeps exchange exposure, position records and the cache
consistent.

Rules:
1. Symbols are normalised to BASE/QUOTE before any lookup
2. A close requires a persisted open record; without one nothing is sent
   to the exchange and PositionNotFound is raised
3. Operations on the same symbol are serialised by a per-symbol lock;
   different symbols proceed concurrently
4. Opens and closes are published as PositionOpened / PositionClosed
5. sync_positions treats the exchange as the source of truth for open
   exposure: unrecorded live positions are adopted, records with nothing
   live are closed as RECONCILIATION
"""

import asyncio
import logging
import math
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

from ..config.settings import ExchangeType, PositionConfig
from ..core.events import EventBus, PositionClosed, PositionOpened
from ..core.exceptions import DuplicatePosition, PositionNotFound
from ..utils.logger import get_trading_logger
from .cache import PositionCache
from .interfaces import ExchangeGateway, PositionStore
from .models import ExitReason, Position, PositionSide, coerce_exit_reason, exit_reason_value

logger = logging.getLogger(__name__)


KNOWN_QUOTES = ("USDT", "USDC", "BUSD", "FDUSD", "USD", "BTC", "ETH")


def normalize_symbol(symbol: str) -> str:
    """
    Canonical BASE/QUOTE form.

    Accepts BTCUSDT, BTC/USDT, BTC/USDT:USDT, btc-usdt and BTC_USDT.

    Raises:
        ValueError: empty or unrecognisable symbol
    """
    raw = (symbol or "").strip().upper()
    if not raw:
        raise ValueError("Empty symbol")

    raw = raw.split(":", 1)[0]

    for sep in ("/", "-", "_"):
        if sep in raw:
            base, quote = raw.split(sep, 1)
            if base and quote:
                return f"{base}/{quote}"
            raise ValueError(f"Unrecognised symbol: {symbol!r}")

    for quote in KNOWN_QUOTES:
        if raw.endswith(quote) and len(raw) > len(quote):
            return f"{raw[:-len(quote)]}/{quote}"

    raise ValueError(f"Unrecognised symbol: {symbol!r}")


def exchange_symbol(symbol: str, exchange_type: Union[ExchangeType, str]) -> str:
    """Exchange spelling of a symbol (binance BTCUSDT, okx BTC/USDT:USDT)."""
    canonical = normalize_symbol(symbol)
    base, quote = canonical.split("/")
    if ExchangeType(exchange_type) == ExchangeType.OKX:
        return f"{base}/{quote}:{quote}"
    return f"{base}{quote}"


class PositionManager:
    """Serialised, cache-backed access to live positions."""

    def __init__(
        self,
        exchange: ExchangeGateway,
        store: PositionStore,
        config: Optional[PositionConfig] = None,
        event_bus: Optional[EventBus] = None,
        cache: Optional[PositionCache] = None,
    ):
        self.exchange = exchange
        self.store = store
        self.config = config or PositionConfig()
        self.event_bus = event_bus
        self.cache: PositionCache[Position] = (
            cache if cache is not None else PositionCache(self.config.cache_timeout_seconds)
        )
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.trading_logger = get_trading_logger(f"{__name__}.PositionManager")

    @property
    def exchange_type(self) -> str:
        return ExchangeType(self.config.exchange_type).value

    def normalize_symbol(self, symbol: str) -> str:
        return normalize_symbol(symbol)

    def exchange_symbol(self, symbol: str) -> str:
        return exchange_symbol(symbol, self.config.exchange_type)

    def size_for(self, price: float, amount_usd: Optional[float] = None, leverage: Optional[int] = None) -> float:
        """
        Contract size for committing ``amount_usd`` margin at ``leverage``.

        size = amount_usd * leverage / price, floored to ``size_decimals``.
        """
        if price <= 0:
            raise ValueError(f"Price must be positive, got {price}")
        amount = self.config.amount_usd if amount_usd is None else amount_usd
        lev = self.config.leverage if leverage is None else leverage
        factor = 10 ** self.config.size_decimals
        return math.floor(amount * lev / price * factor) / factor

    async def _fetch(self, canonical: str) -> Optional[Position]:
        cached = self.cache.get(canonical)
        if cached is not None:
            return cached

        position = await self.exchange.get_position(self.exchange_symbol(canonical))
        if position is not None and position.is_open:
            position.symbol = canonical
            self.cache.set(canonical, position)
            return position
        return None

    async def get_position(self, symbol: str) -> Optional[Position]:
        """Live position from the cache, refreshed from the exchange when stale."""
        canonical = self.normalize_symbol(symbol)
        async with self._locks[canonical]:
            return await self._fetch(canonical)

    async def has_position(self, symbol: str) -> bool:
        return await self.get_position(symbol) is not None

    async def open_position(
        self,
        symbol: str,
        side: Union[PositionSide, str],
        size: float,
        leverage: Optional[int] = None,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> Position:
        """
        Open a position and record it.

        Raises:
            DuplicatePosition: a live position or open record already exists
        """
        canonical = self.normalize_symbol(symbol)
        side = PositionSide(side)
        leverage = leverage or self.config.leverage

        if size <= 0:
            raise ValueError(f"Position size must be positive, got {size}")

        async with self._locks[canonical]:
            if await self._fetch(canonical) is not None or await self.store.get_open_position(canonical):
                raise DuplicatePosition(canonical)

            position = await self.exchange.open_position(
                self.exchange_symbol(canonical), side, size, leverage, stop_loss, take_profit
            )
            position.symbol = canonical
            position.exchange = position.exchange or self.exchange_type
            if position.stop_loss is None:
                position.stop_loss = stop_loss
            if position.take_profit is None:
                position.take_profit = take_profit

            await self.store.save_position(position)
            self.cache.set(canonical, position)

            self.trading_logger.position_event(
                canonical, "OPENED", position.size, position.entry_price,
                side=PositionSide(position.side).value,
            )

            if self.event_bus is not None:
                await self.event_bus.publish(PositionOpened(
                    timestamp=datetime.now(timezone.utc),
                    symbol=canonical,
                    side=PositionSide(position.side).value,
                    entry_price=position.entry_price,
                    size=position.size,
                    leverage=position.leverage,
                    exchange=position.exchange,
                    stop_loss=position.stop_loss,
                    take_profit=position.take_profit,
                ))

            return position

    async def close_position(
        self,
        symbol: str,
        reason: Union[ExitReason, str] = ExitReason.MANUAL,
    ) -> Position:
        """
        Close the recorded position for ``symbol``.

        ``reason`` is an ExitReason or any non-empty label, e.g.
        "quick_take_profit"; labels are recorded and published as given.

        Returns:
            The closed position record with realized PnL

        Raises:
            PositionNotFound: no persisted open record for the symbol
        """
        canonical = self.normalize_symbol(symbol)
        reason = coerce_exit_reason(reason)

        async with self._locks[canonical]:
            record = await self.store.get_open_position(canonical)
            if record is None:
                logger.info(f"{canonical}: no open position record, close skipped")
                raise PositionNotFound(canonical)

            exit_price = await self.exchange.close_position(
                self.exchange_symbol(canonical), PositionSide(record.side), record.size
            )

            closed = await self.store.mark_closed(canonical, exit_price, reason)
            if closed is None:
                closed = record
                closed.mark_closed(exit_price, reason)

            self.cache.clear(canonical)

            pnl = closed.pnl_at(exit_price)
            self.trading_logger.position_event(
                canonical, "CLOSED", closed.size, exit_price,
                side=PositionSide(closed.side).value, reason=exit_reason_value(reason),
            )
            logger.info(f"{canonical} closed: PnL={pnl:.2f}")

            if self.event_bus is not None:
                await self.event_bus.publish(PositionClosed(
                    timestamp=datetime.now(timezone.utc),
                    symbol=canonical,
                    side=PositionSide(closed.side).value,
                    entry_price=closed.entry_price,
                    exit_price=exit_price,
                    size=closed.size,
                    exchange=closed.exchange or self.exchange_type,
                    realized_pnl=pnl,
                    realized_pnl_pct=closed.pnl_pct_at(exit_price),
                    exit_reason=exit_reason_value(reason),
                ))

            return closed

    async def get_all_positions(self) -> List[Position]:
        """Open position records held by the store."""
        return await self.store.get_open_positions()

    async def sync_positions(self, symbols: Iterable[str]) -> Dict[str, str]:
        """
        Reconcile store records with the exchange for ``symbols``.

        Returns:
            Action per canonical symbol: "adopted", "closed", "in_sync"
            or "flat"
        """
        actions: Dict[str, str] = {}
        for symbol in symbols:
            canonical = self.normalize_symbol(symbol)
            async with self._locks[canonical]:
                actions[canonical] = await self._sync_symbol(canonical)

        changed = {s: a for s, a in actions.items() if a in ("adopted", "closed")}
        if changed:
            logger.warning(f"Position sync changed records: {changed}")
        else:
            logger.info(f"Position sync: {len(actions)} symbols already consistent")
        return actions

    async def _sync_symbol(self, canonical: str) -> str:
        record = await self.store.get_open_position(canonical)
        live = await self.exchange.get_position(self.exchange_symbol(canonical))
        if live is not None and not live.is_open:
            live = None

        if live is not None and record is None:
            live.symbol = canonical
            live.exchange = live.exchange or self.exchange_type
            live.metadata['synced_from_exchange'] = True
            await self.store.save_position(live)
            self.cache.set(canonical, live)
            self.trading_logger.position_event(
                canonical, "ADOPTED", live.size, live.entry_price,
                side=PositionSide(live.side).value,
            )
            return "adopted"

        if record is not None and live is None:
            exit_price = record.current_price or record.entry_price
            await self.store.mark_closed(canonical, exit_price, ExitReason.RECONCILIATION)
            self.cache.clear(canonical)
            self.trading_logger.position_event(
                canonical, "CLOSED", record.size, exit_price,
                side=PositionSide(record.side).value, reason=ExitReason.RECONCILIATION.value,
            )
            return "closed"

        return "in_sync" if record is not None else "flat"
