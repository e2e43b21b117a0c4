"""
Decision data models shared by the breakout, condition, fusion, gate and
risk-review stages.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from ..analytics.trend import MarketRegime


class Direction(str, Enum):
    """Trade direction."""
    LONG = "long"
    SHORT = "short"


class Signal(str, Enum):
    """Fused trade action."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class Confidence(str, Enum):
    """Confidence band of a fused decision."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Verdict(str, Enum):
    """Risk review verdict."""
    APPROVE = "APPROVE"
    REJECT = "REJECT"


@dataclass(frozen=True)
class CheckResult:
    """Outcome of a single weighted breakout check."""
    name: str
    passed: bool
    weight: float
    value: Optional[float] = None
    reason: str = ""

    @property
    def contribution(self) -> float:
        return self.weight if self.passed else 0.0


@dataclass(frozen=True)
class BreakoutSignal:
    """Edge breakout score for one bar."""
    direction: Optional[Direction]
    score_b: float
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def passed_checks(self) -> List[str]:
        return [c.name for c in self.checks if c.passed]


@dataclass(frozen=True)
class ConditionScore:
    """Share of market-condition checks agreeing with the direction."""
    score_c: float
    passed_count: int
    evaluated_count: int
    skipped: List[str] = field(default_factory=list)
    details: Dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class FusionDecision:
    """Fused, immutable decision for one symbol and cycle."""
    symbol: str
    timestamp: datetime
    score_b: float
    score_c: float
    final_score: float
    signal: Signal
    confidence: Confidence
    direction: Optional[Direction] = None
    reference_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    reason: str = ""

    @property
    def is_actionable(self) -> bool:
        return self.signal != Signal.HOLD


@dataclass(frozen=True)
class GateResult:
    """Regime gate outcome."""
    allowed: bool
    reason: str
    adjusted_score: float
    threshold: Optional[float] = None


@dataclass(frozen=True)
class RiskVerdict:
    """Oracle verdict (or the fail-closed substitute)."""
    verdict: Verdict
    rationale: str

    @property
    def approved(self) -> bool:
        return self.verdict == Verdict.APPROVE


@dataclass(frozen=True)
class ReviewOutcome:
    """Final risk review result after deterministic overrides."""
    approved: bool
    verdict: RiskVerdict
    overrides: List[str] = field(default_factory=list)

    @property
    def reason(self) -> str:
        if self.overrides:
            return "; ".join(self.overrides)
        return self.verdict.rationale


@dataclass
class CycleResult:
    """Everything one evaluation cycle produced for a symbol."""
    symbol: str
    timestamp: datetime
    signal: Signal = Signal.HOLD
    reason: str = ""
    decision: Optional[FusionDecision] = None
    breakout: Optional[BreakoutSignal] = None
    conditions: Optional[ConditionScore] = None
    regime: MarketRegime = MarketRegime.UNKNOWN
    gate: Optional[GateResult] = None
    review: Optional[ReviewOutcome] = None

    @property
    def approved(self) -> bool:
        return self.review is not None and self.review.approved and self.signal != Signal.HOLD
