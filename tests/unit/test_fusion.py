"""
Unit tests for decision fusion.
"""

from dataclasses import FrozenInstanceError

import pytest

from edge_engine.decision.fusion import DecisionFusion
from edge_engine.decision.models import Confidence, Direction, Signal


@pytest.mark.parametrize(
    "score_b,score_c",
    [(0.0, 0.0), (1.0, 1.0), (0.45, 2 / 3), (0.9, 0.1), (0.3, 0.95)],
)
def test_final_score_is_weighted_sum(score_b, score_c):
    decision = DecisionFusion().fuse(score_b, score_c, Direction.LONG, 100.0)

    assert decision.final_score == pytest.approx(0.6 * score_b + 0.4 * score_c)


def test_high_score_long_is_buy():
    decision = DecisionFusion().fuse(0.9, 0.75, Direction.LONG, 100.0, symbol="BTC/USDT")

    assert decision.signal == Signal.BUY
    assert decision.confidence == Confidence.HIGH
    assert decision.stop_loss == pytest.approx(99.4)
    assert decision.take_profit == pytest.approx(101.2)
    assert decision.stop_loss < decision.reference_price < decision.take_profit


def test_high_score_short_is_sell():
    decision = DecisionFusion().fuse(0.9, 0.75, Direction.SHORT, 100.0)

    assert decision.signal == Signal.SELL
    assert decision.stop_loss == pytest.approx(100.6)
    assert decision.take_profit == pytest.approx(98.8)
    assert decision.take_profit < decision.reference_price < decision.stop_loss


def test_signal_floor_boundary():
    fusion = DecisionFusion()

    above = fusion.fuse(0.8, 0.76, Direction.LONG, 100.0)
    below = fusion.fuse(0.8, 0.74, Direction.LONG, 100.0)

    assert above.signal == Signal.BUY
    assert below.signal == Signal.HOLD
    assert below.confidence == Confidence.MEDIUM


def test_medium_band_holds():
    decision = DecisionFusion().fuse(0.7, 0.7, Direction.LONG, 100.0)

    assert decision.signal == Signal.HOLD
    assert decision.confidence == Confidence.MEDIUM
    assert decision.stop_loss is not None


def test_low_band_holds():
    decision = DecisionFusion().fuse(0.45, 2 / 3, Direction.LONG, 98.98)

    assert decision.final_score == pytest.approx(0.5367, abs=1e-4)
    assert decision.signal == Signal.HOLD
    assert decision.confidence == Confidence.LOW


def test_no_direction_holds_without_levels():
    decision = DecisionFusion().fuse(1.0, 1.0, None, 100.0)

    assert decision.signal == Signal.HOLD
    assert decision.confidence == Confidence.LOW
    assert decision.stop_loss is None
    assert decision.take_profit is None


@pytest.mark.parametrize("score_b,score_c", [(-0.1, 0.5), (0.5, 1.01), (1.5, 0.0)])
def test_out_of_range_scores_rejected(score_b, score_c):
    with pytest.raises(ValueError):
        DecisionFusion().fuse(score_b, score_c, Direction.LONG, 100.0)


def test_decision_is_immutable():
    decision = DecisionFusion().fuse(0.9, 0.9, Direction.LONG, 100.0)

    with pytest.raises(FrozenInstanceError):
        decision.final_score = 0.1
