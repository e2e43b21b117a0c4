"""
End-to-end tests for the decision pipeline.

The ladder history (see tests.support) gives a known profile with 10
buckets: VAL 101.0, VAH 108.0, VPOC 101.5. The last 20 bars alternate
100 / 200 volume, so a bar of 275 has a local z of 2.5. A very large
minimum EMA gap pins the regime to RANGING.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from edge_engine.analytics.trend import MarketRegime
from edge_engine.config.settings import (
    AppConfig,
    GateConfig,
    PipelineConfig,
    ProfileConfig,
    RiskReviewConfig,
    TrendConfig,
)
from edge_engine.core.events import EventBus
from edge_engine.decision.conditions import MarketConditionSnapshot
from edge_engine.decision.models import Confidence, Direction, Signal
from edge_engine.decision.pipeline import CycleInput, DecisionPipeline, create_default_pipeline
from edge_engine.decision.oracle import ChatCompletionsOracle
from edge_engine.decision.risk_review import REVIEW_UNAVAILABLE
from edge_engine.position.cache import PositionCache
from edge_engine.position.interfaces import InMemoryPositionStore
from edge_engine.position.manager import PositionManager
from edge_engine.position.models import PositionSide

from tests.support import FakeExchange, StubOracle, make_bar


NIGHT = datetime(2024, 1, 2, 3, 0, tzinfo=timezone.utc)
ASIA = datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc)


def make_config(**overrides) -> AppConfig:
    sections = {
        "profile": ProfileConfig(bucket_count=10),
        "trend": TrendConfig(min_gap_pct=0.5),
    }
    sections.update(overrides)
    return AppConfig(**sections)


def weak_bar():
    return make_bar(98.9, 99.6, 275.0, close=98.98, timestamp=NIGHT)


def strong_bar():
    return make_bar(98.9, 99.6, 5000.0, close=98.98, timestamp=ASIA)


def mixed_snapshot():
    return MarketConditionSnapshot(
        bids=[(98.9, 60.0)],
        asks=[(99.0, 40.0)],
        funding_rate=0.0001,
        open_interest=1100.0,
        open_interest_avg=1000.0,
    )


def supportive_snapshot():
    return MarketConditionSnapshot(
        bids=[(98.9, 60.0)],
        asks=[(99.0, 40.0)],
        funding_rate=-0.0001,
        open_interest=1100.0,
        open_interest_avg=1000.0,
    )


async def collect_audits(bus):
    audits = []

    async def on_audit(event):
        audits.append(event)

    await bus.subscribe("CycleAudited", on_audit)
    return audits


@pytest.mark.asyncio
async def test_weak_breakout_holds_without_review(ladder_history, approving_oracle):
    bus = EventBus()
    audits = await collect_audits(bus)
    pipeline = DecisionPipeline(make_config(), approving_oracle, event_bus=bus)

    result = await pipeline.run_cycle("BTC/USDT", ladder_history + [weak_bar()], mixed_snapshot())

    assert result.signal == Signal.HOLD
    assert result.breakout.direction == Direction.LONG
    assert set(result.breakout.passed_checks) == {"edge_position", "local_volume_z"}
    assert result.decision.score_b == pytest.approx(0.45)
    assert result.decision.score_c == pytest.approx(2 / 3)
    assert result.decision.final_score == pytest.approx(0.5367, abs=1e-4)
    assert result.decision.confidence == Confidence.LOW
    assert result.regime == MarketRegime.RANGING
    assert result.gate.allowed is False
    assert result.gate.threshold == 0.60
    assert result.review is None
    assert approving_oracle.requests == []

    assert len(audits) == 1
    assert audits[0].symbol == "BTC/USDT"
    assert audits[0].signal == "HOLD"
    assert audits[0].regime == "RANGING"
    assert audits[0].final_score == pytest.approx(0.5367, abs=1e-4)


@pytest.mark.asyncio
async def test_strong_breakout_approved(ladder_history, approving_oracle):
    pipeline = DecisionPipeline(make_config(), approving_oracle)

    result = await pipeline.run_cycle("BTC/USDT", ladder_history + [strong_bar()], supportive_snapshot())

    assert result.decision.score_b == pytest.approx(0.92)
    assert result.decision.score_c == pytest.approx(1.0)
    assert result.decision.final_score == pytest.approx(0.952)
    assert result.gate.allowed is True
    assert result.review.approved is True
    assert result.signal == Signal.BUY
    assert result.approved is True
    assert result.decision.stop_loss == pytest.approx(98.98 * 0.994)
    assert len(approving_oracle.requests) == 1


@pytest.mark.asyncio
async def test_disabled_direction_blocks_before_review(ladder_history, approving_oracle):
    config = make_config(gate=GateConfig(disabled_direction="long"))
    pipeline = DecisionPipeline(config, approving_oracle)

    result = await pipeline.run_cycle("BTC/USDT", ladder_history + [strong_bar()], supportive_snapshot())

    assert result.decision.signal == Signal.BUY
    assert result.signal == Signal.HOLD
    assert result.gate.allowed is False
    assert result.reason.startswith("gate:")
    assert approving_oracle.requests == []


@pytest.mark.asyncio
async def test_oracle_veto_holds(ladder_history):
    oracle = StubOracle(rationale="approve but keep a light position")
    pipeline = DecisionPipeline(make_config(), oracle)

    result = await pipeline.run_cycle("BTC/USDT", ladder_history + [strong_bar()], supportive_snapshot())

    assert result.signal == Signal.HOLD
    assert result.review.approved is False
    assert "light position" in result.reason


@pytest.mark.asyncio
async def test_review_timeout_fails_closed(ladder_history):
    config = make_config(risk_review=RiskReviewConfig(timeout_seconds=0.05))
    pipeline = DecisionPipeline(config, StubOracle(delay=1.0))

    result = await pipeline.run_cycle("BTC/USDT", ladder_history + [strong_bar()], supportive_snapshot())

    assert result.signal == Signal.HOLD
    assert result.review.verdict.rationale == REVIEW_UNAVAILABLE


@pytest.mark.asyncio
async def test_cycle_deadline_holds(ladder_history):
    bus = EventBus()
    audits = await collect_audits(bus)
    config = make_config(pipeline=PipelineConfig(cycle_deadline_seconds=0.1))
    pipeline = DecisionPipeline(config, StubOracle(delay=1.0), event_bus=bus)

    result = await pipeline.run_cycle("BTC/USDT", ladder_history + [strong_bar()], supportive_snapshot())

    assert result.signal == Signal.HOLD
    assert "deadline" in result.reason
    assert len(audits) == 1


@pytest.mark.asyncio
async def test_insufficient_history_holds(approving_oracle):
    pipeline = DecisionPipeline(make_config(), approving_oracle)
    bars = [make_bar(100.0, 101.0, 10.0) for _ in range(100)]

    result = await pipeline.run_cycle("BTC/USDT", bars, supportive_snapshot())

    assert result.signal == Signal.HOLD
    assert "Insufficient history" in result.reason
    assert result.decision is None
    assert approving_oracle.requests == []


@pytest.mark.asyncio
async def test_run_all_evaluates_symbols_independently(ladder_history, approving_oracle):
    pipeline = DecisionPipeline(make_config(), approving_oracle)

    results = await pipeline.run_all([
        CycleInput("BTC/USDT", ladder_history + [strong_bar()], supportive_snapshot()),
        CycleInput("ETH/USDT", ladder_history + [weak_bar()], mixed_snapshot()),
    ])

    assert results["BTC/USDT"].signal == Signal.BUY
    assert results["ETH/USDT"].signal == Signal.HOLD
    assert [r.symbol for r in approving_oracle.requests] == ["BTC/USDT"]


@pytest.mark.asyncio
async def test_run_all_rejects_duplicate_symbols(ladder_history, approving_oracle):
    pipeline = DecisionPipeline(make_config(), approving_oracle)
    bars = ladder_history + [weak_bar()]

    with pytest.raises(ValueError):
        await pipeline.run_all([
            CycleInput("BTC/USDT", bars, mixed_snapshot()),
            CycleInput("BTC/USDT", bars, mixed_snapshot()),
        ])


@pytest.mark.asyncio
async def test_approved_cycle_opens_position_once(ladder_history, approving_oracle, clock):
    exchange = FakeExchange(price=98.98)
    manager = PositionManager(exchange, InMemoryPositionStore(), cache=PositionCache(30, clock=clock))
    pipeline = DecisionPipeline(make_config(), approving_oracle, position_manager=manager)

    result = await pipeline.run_cycle("BTC/USDT", ladder_history + [strong_bar()], supportive_snapshot())
    position = await pipeline.act(result)
    again = await pipeline.act(result)

    assert position.symbol == "BTC/USDT"
    assert position.side == PositionSide.LONG
    assert position.size == pytest.approx(10.103)
    assert position.stop_loss == pytest.approx(98.98 * 0.994)
    assert again is None
    assert exchange.open_calls == ["BTCUSDT"]


@pytest.mark.asyncio
async def test_held_cycle_never_opens(ladder_history, approving_oracle, fake_exchange):
    manager = PositionManager(fake_exchange, InMemoryPositionStore())
    pipeline = DecisionPipeline(make_config(), approving_oracle, position_manager=manager)

    result = await pipeline.run_cycle("BTC/USDT", ladder_history + [weak_bar()], mixed_snapshot())

    assert await pipeline.act(result) is None
    assert fake_exchange.open_calls == []


@pytest.mark.asyncio
async def test_run_and_act_respects_auto_open(ladder_history, approving_oracle, fake_exchange):
    config = make_config(pipeline=PipelineConfig(auto_open=True))
    manager = PositionManager(fake_exchange, InMemoryPositionStore())
    pipeline = DecisionPipeline(config, approving_oracle, position_manager=manager)

    await pipeline.run_and_act([
        CycleInput("BTC/USDT", ladder_history + [strong_bar()], supportive_snapshot()),
    ])

    assert fake_exchange.open_calls == ["BTCUSDT"]


@pytest.mark.asyncio
async def test_exactly_one_window_of_bars_is_scored(ladder_history, approving_oracle):
    pipeline = DecisionPipeline(make_config(), approving_oracle)
    bars = ladder_history[1:] + [weak_bar()]
    assert len(bars) == 720

    result = await pipeline.run_cycle("BTC/USDT", bars, mixed_snapshot())

    assert result.decision is not None
    assert result.breakout is not None
    assert "Insufficient history" not in result.reason
    assert result.regime == MarketRegime.RANGING


@pytest.mark.asyncio
async def test_one_bar_short_of_window_holds(ladder_history, approving_oracle):
    pipeline = DecisionPipeline(make_config(), approving_oracle)

    result = await pipeline.run_cycle("BTC/USDT", ladder_history[2:] + [weak_bar()], mixed_snapshot())

    assert result.decision is None
    assert "need 720 bars, got 719" in result.reason


@pytest.mark.asyncio
async def test_unexpected_stage_error_holds_only_its_symbol(ladder_history, approving_oracle, monkeypatch):
    bus = EventBus()
    audits = await collect_audits(bus)
    pipeline = DecisionPipeline(make_config(), approving_oracle, event_bus=bus)
    validate = pipeline.condition_validator.validate

    def validate_or_fail(direction, snapshot, symbol=""):
        if symbol == "ETH/USDT":
            raise TypeError("order book row is not a pair")
        return validate(direction, snapshot, symbol=symbol)

    monkeypatch.setattr(pipeline.condition_validator, "validate", validate_or_fail)

    results = await pipeline.run_all([
        CycleInput("BTC/USDT", ladder_history + [strong_bar()], supportive_snapshot()),
        CycleInput("ETH/USDT", ladder_history + [strong_bar()], supportive_snapshot()),
    ])

    assert results["BTC/USDT"].signal == Signal.BUY
    assert results["ETH/USDT"].signal == Signal.HOLD
    assert results["ETH/USDT"].decision is None
    assert "cycle failed" in results["ETH/USDT"].reason
    assert "TypeError" in results["ETH/USDT"].reason
    assert sorted(a.symbol for a in audits) == ["BTC/USDT", "ETH/USDT"]

def test_factory_wires_chat_oracle():
    pipeline = create_default_pipeline(make_config())

    assert isinstance(pipeline.review_stage.oracle, ChatCompletionsOracle)
    assert pipeline.required_bars == 720


@pytest.mark.asyncio
async def test_cancel_event_rejects_review(ladder_history):
    pipeline = DecisionPipeline(make_config(), StubOracle(delay=1.0))
    cancel_event = asyncio.Event()
    cancel_event.set()

    result = await pipeline.run_cycle(
        "BTC/USDT", ladder_history + [strong_bar()], supportive_snapshot(), cancel_event=cancel_event
    )

    assert result.signal == Signal.HOLD
    assert result.review.verdict.rationale == REVIEW_UNAVAILABLE
