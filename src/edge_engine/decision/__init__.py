"""
Decision stages - breakout, conditions, fusion, gate, risk review, pipeline.
"""

from .models import (
    Direction,
    Signal,
    Confidence,
    Verdict,
    CheckResult,
    BreakoutSignal,
    ConditionScore,
    FusionDecision,
    GateResult,
    RiskVerdict,
    ReviewOutcome,
    CycleResult,
)
from .breakout import EdgeBreakoutDetector, BreakoutCheck, session_weight
from .conditions import ConditionValidator, MarketConditionSnapshot
from .fusion import DecisionFusion
from .gate import SignalGate
from .oracle import RiskOracle, ChatCompletionsOracle, ReviewRequest, parse_verdict
from .risk_review import RiskReviewStage, REVIEW_UNAVAILABLE
from .pipeline import DecisionPipeline, CycleInput, create_default_pipeline

__all__ = [
    'Direction',
    'Signal',
    'Confidence',
    'Verdict',
    'CheckResult',
    'BreakoutSignal',
    'ConditionScore',
    'FusionDecision',
    'GateResult',
    'RiskVerdict',
    'ReviewOutcome',
    'CycleResult',
    'EdgeBreakoutDetector',
    'BreakoutCheck',
    'session_weight',
    'ConditionValidator',
    'MarketConditionSnapshot',
    'DecisionFusion',
    'SignalGate',
    'RiskOracle',
    'ChatCompletionsOracle',
    'ReviewRequest',
    'parse_verdict',
    'RiskReviewStage',
    'REVIEW_UNAVAILABLE',
    'DecisionPipeline',
    'CycleInput',
    'create_default_pipeline',
]
