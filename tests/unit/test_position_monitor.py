"""
Unit tests for the stop loss / take profit monitor.
"""

import asyncio

import pytest

from edge_engine.core.events import EventBus
from edge_engine.position.cache import PositionCache
from edge_engine.position.interfaces import InMemoryPositionStore
from edge_engine.position.manager import PositionManager
from edge_engine.position.models import ExitReason, Position, PositionSide
from edge_engine.position.monitor import PositionMonitor, exit_reason_for


@pytest.fixture
def store():
    return InMemoryPositionStore()


@pytest.fixture
def manager(fake_exchange, store, clock):
    return PositionManager(fake_exchange, store, cache=PositionCache(30, clock=clock))


def make_position(side, stop_loss=None, take_profit=None):
    return Position(
        symbol="BTC/USDT",
        side=side,
        size=1.0,
        entry_price=100.0,
        stop_loss=stop_loss,
        take_profit=take_profit,
    )


# ============================================================================
# Level checks
# ============================================================================

@pytest.mark.parametrize(
    "side,price,expected",
    [
        (PositionSide.LONG, 99.0, ExitReason.STOP_LOSS),
        (PositionSide.LONG, 99.4, ExitReason.STOP_LOSS),
        (PositionSide.LONG, 100.0, None),
        (PositionSide.LONG, 101.2, ExitReason.TAKE_PROFIT),
        (PositionSide.SHORT, 101.0, ExitReason.STOP_LOSS),
        (PositionSide.SHORT, 100.0, None),
        (PositionSide.SHORT, 98.0, ExitReason.TAKE_PROFIT),
    ],
)
def test_exit_reason_for(side, price, expected):
    if side == PositionSide.LONG:
        position = make_position(side, stop_loss=99.4, take_profit=101.2)
    else:
        position = make_position(side, stop_loss=100.6, take_profit=98.8)

    assert exit_reason_for(position, price) == expected


def test_missing_levels_never_trigger():
    position = make_position(PositionSide.LONG)

    assert exit_reason_for(position, 1.0) is None
    assert exit_reason_for(position, 1000.0) is None


# ============================================================================
# Closing
# ============================================================================

@pytest.mark.asyncio
async def test_stop_loss_closes_through_manager(fake_exchange, store, clock):
    bus = EventBus()
    closed_events = []

    async def on_closed(event):
        closed_events.append(event)

    await bus.subscribe("PositionClosed", on_closed)
    manager = PositionManager(fake_exchange, store, event_bus=bus, cache=PositionCache(30, clock=clock))
    await manager.open_position("BTC/USDT", PositionSide.LONG, 1.0, stop_loss=99.4, take_profit=101.2)
    fake_exchange.price = 99.0

    closed = await PositionMonitor(manager).check_prices({"BTCUSDT": 99.0})

    assert [p.symbol for p in closed] == ["BTC/USDT"]
    assert closed[0].exit_reason == ExitReason.STOP_LOSS
    assert fake_exchange.close_calls == ["BTCUSDT"]
    assert store.open_positions == {}
    assert closed_events[0].exit_reason == "stop_loss"


@pytest.mark.asyncio
async def test_only_crossed_positions_close(manager, fake_exchange, store):
    await manager.open_position("BTC/USDT", PositionSide.LONG, 1.0, stop_loss=99.4, take_profit=101.2)
    await manager.open_position("ETH/USDT", PositionSide.SHORT, 1.0, stop_loss=100.6, take_profit=98.8)

    closed = await PositionMonitor(manager).check_prices({"BTC/USDT": 100.5, "ETH/USDT": 98.5})

    assert [(p.symbol, p.exit_reason) for p in closed] == [("ETH/USDT", ExitReason.TAKE_PROFIT)]
    assert list(store.open_positions) == ["BTC/USDT"]
    assert store.open_positions["BTC/USDT"].current_price == 100.5


@pytest.mark.asyncio
async def test_symbols_without_price_are_skipped(manager, fake_exchange):
    await manager.open_position("BTC/USDT", PositionSide.LONG, 1.0, stop_loss=99.4)

    closed = await PositionMonitor(manager).check_prices({"ETH/USDT": 1.0})

    assert closed == []
    assert fake_exchange.close_calls == []


# ============================================================================
# Loop
# ============================================================================

@pytest.mark.asyncio
async def test_loop_polls_feed_for_open_symbols(manager, fake_exchange, store):
    await manager.open_position("BTC/USDT", PositionSide.LONG, 1.0, take_profit=101.2)
    requested = []

    async def price_feed(symbols):
        requested.append(list(symbols))
        return {"BTC/USDT": 102.0}

    monitor = PositionMonitor(manager, price_feed=price_feed, interval_seconds=0.01)
    await monitor.start()
    for _ in range(50):
        if not store.open_positions:
            break
        await asyncio.sleep(0.01)
    await monitor.stop()

    assert requested[0] == ["BTC/USDT"]
    assert store.history[-1].exit_reason == ExitReason.TAKE_PROFIT
    assert monitor.monitoring_task is None


@pytest.mark.asyncio
async def test_loop_survives_feed_errors(manager):
    await manager.open_position("BTC/USDT", PositionSide.LONG, 1.0, stop_loss=99.4)
    calls = []

    async def price_feed(symbols):
        calls.append(symbols)
        raise ConnectionError("ticker unavailable")

    monitor = PositionMonitor(manager, price_feed=price_feed, interval_seconds=0.01)
    await monitor.start()
    await asyncio.sleep(0.05)
    await monitor.stop()

    assert len(calls) >= 2


@pytest.mark.asyncio
async def test_start_requires_price_feed(manager):
    with pytest.raises(RuntimeError):
        await PositionMonitor(manager).start()


def test_interval_defaults_to_config(manager):
    assert PositionMonitor(manager).interval_seconds == manager.config.monitor_interval_seconds
