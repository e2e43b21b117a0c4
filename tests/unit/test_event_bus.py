"""
Unit tests for the EventBus.

Tests:
- Event publishing and subscription
- Error isolation between subscribers
- Unsubscribe
- Independent bus instances
"""

from datetime import datetime, timezone

import pytest

from edge_engine.core.events import CycleAudited, EventBus, PositionClosed, PositionOpened


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def sample_opened_event():
    """Create a sample position opened event."""
    return PositionOpened(
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        symbol="BTC/USDT",
        side="long",
        entry_price=50000.0,
        size=0.02,
        leverage=10,
        exchange="binance",
    )


# ============================================================================
# Basic Functionality Tests
# ============================================================================

@pytest.mark.asyncio
async def test_publish_and_subscribe(sample_opened_event):
    """Test basic event publishing and subscription."""
    bus = EventBus()
    received_events = []

    async def handler(event):
        received_events.append(event)

    await bus.subscribe("PositionOpened", handler)
    await bus.publish(sample_opened_event)

    assert received_events == [sample_opened_event]
    assert received_events[0].entry_price == 50000.0


@pytest.mark.asyncio
async def test_only_matching_type_delivered(sample_opened_event):
    bus = EventBus()
    closed = []

    async def on_closed(event):
        closed.append(event)

    await bus.subscribe("PositionClosed", on_closed)
    await bus.publish(sample_opened_event)

    assert closed == []


@pytest.mark.asyncio
async def test_publish_without_subscribers(sample_opened_event):
    """Publishing with no subscribers is a no-op."""
    await EventBus().publish(sample_opened_event)


@pytest.mark.asyncio
async def test_error_isolation(sample_opened_event):
    """Test that a failing subscriber doesn't affect the others."""
    bus = EventBus()
    received = []

    async def failing_handler(event):
        raise ValueError("Intentional error")

    async def working_handler(event):
        received.append(event)

    await bus.subscribe("PositionOpened", failing_handler)
    await bus.subscribe("PositionOpened", working_handler)

    await bus.publish(sample_opened_event)

    assert received == [sample_opened_event]


@pytest.mark.asyncio
async def test_unsubscribe(sample_opened_event):
    bus = EventBus()
    received = []

    async def handler(event):
        received.append(event)

    await bus.subscribe("PositionOpened", handler)
    assert bus.subscriber_count("PositionOpened") == 1

    await bus.unsubscribe("PositionOpened", handler)
    await bus.publish(sample_opened_event)

    assert bus.subscriber_count("PositionOpened") == 0
    assert received == []


@pytest.mark.asyncio
async def test_buses_do_not_share_subscribers(sample_opened_event):
    first, second = EventBus(), EventBus()
    received = []

    async def handler(event):
        received.append(event)

    await first.subscribe("PositionOpened", handler)
    await second.publish(sample_opened_event)

    assert received == []
    assert second.subscriber_count("PositionOpened") == 0


def test_cycle_audited_record():
    event = CycleAudited(
        timestamp=datetime(2024, 1, 2, 3, 0, tzinfo=timezone.utc),
        symbol="ETH/USDT",
        score_b=0.45,
        final_score=0.54,
        regime="RANGING",
        signal="HOLD",
        reason="final 0.540 below 0.65",
    )

    record = event.to_record()

    assert record["timestamp"] == "2024-01-02T03:00:00+00:00"
    assert record["symbol"] == "ETH/USDT"
    assert record["verdict"] is None
    assert record["approved"] is False


def test_position_closed_defaults():
    event = PositionClosed(timestamp=datetime.now(timezone.utc), symbol="BTC/USDT")

    assert event.realized_pnl == 0.0
    assert event.metadata == {}
