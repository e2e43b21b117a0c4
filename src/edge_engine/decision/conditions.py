"""
Condition Validator - market-condition agreement with the breakout direction.

Checks:
1. Order-book imbalance leans in the trade direction
2. Funding rate does not charge the trade side
3. Open interest is not shrinking

A check whose input is missing is skipped: it counts neither as passed nor
as evaluated.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

from ..config.settings import ConditionConfig
from ..core.exceptions import PartialDataUnavailable
from .models import ConditionScore, Direction

logger = logging.getLogger(__name__)


BookLevel = Tuple[float, float]  # (price, quantity)


@dataclass(frozen=True)
class MarketConditionSnapshot:
    """Per-cycle market conditions; any field may be missing."""
    bids: Optional[Sequence[BookLevel]] = None
    asks: Optional[Sequence[BookLevel]] = None
    funding_rate: Optional[float] = None
    open_interest: Optional[float] = None
    open_interest_avg: Optional[float] = None
    metadata: Dict[str, object] = field(default_factory=dict)


class ConditionValidator:
    """Computes score_c = passed / evaluated over the available checks."""

    def __init__(self, config: Optional[ConditionConfig] = None):
        self.config = config or ConditionConfig()
        self.checks: List[Tuple[str, Callable[[Direction, MarketConditionSnapshot], bool]]] = [
            ("order_book_imbalance", self.check_order_book),
            ("funding_rate", self.check_funding),
            ("open_interest", self.check_open_interest),
        ]

    def validate(
        self,
        direction: Optional[Direction],
        snapshot: MarketConditionSnapshot,
        symbol: str = "",
    ) -> ConditionScore:
        if direction is None:
            return ConditionScore(score_c=0.0, passed_count=0, evaluated_count=0)

        passed = 0
        evaluated = 0
        skipped: List[str] = []
        details: Dict[str, bool] = {}

        for name, check in self.checks:
            try:
                ok = check(direction, snapshot)
            except PartialDataUnavailable as e:
                logger.info(f"Skipping {name} for {symbol or '?'}: {e}")
                skipped.append(name)
                continue
            evaluated += 1
            details[name] = ok
            if ok:
                passed += 1

        score = passed / evaluated if evaluated else 0.0
        logger.debug(
            f"Conditions {symbol or '?'} {direction.value}: "
            f"{passed}/{evaluated} passed, skipped={skipped}"
        )
        return ConditionScore(
            score_c=score,
            passed_count=passed,
            evaluated_count=evaluated,
            skipped=skipped,
            details=details,
        )

    def order_book_imbalance(self, snapshot: MarketConditionSnapshot) -> float:
        """(bid qty - ask qty) / (bid qty + ask qty) over the top levels."""
        if not snapshot.bids or not snapshot.asks:
            raise PartialDataUnavailable("order_book")
        depth = self.config.book_depth
        bid_qty = sum(qty for _, qty in snapshot.bids[:depth])
        ask_qty = sum(qty for _, qty in snapshot.asks[:depth])
        total = bid_qty + ask_qty
        if total <= 0:
            raise PartialDataUnavailable("order_book")
        return (bid_qty - ask_qty) / total

    def check_order_book(self, direction: Direction, snapshot: MarketConditionSnapshot) -> bool:
        imbalance = self.order_book_imbalance(snapshot)
        threshold = self.config.imbalance_threshold
        if direction == Direction.LONG:
            return imbalance >= threshold
        return imbalance <= -threshold

    def check_funding(self, direction: Direction, snapshot: MarketConditionSnapshot) -> bool:
        # Longs pay positive funding, shorts pay negative
        if snapshot.funding_rate is None:
            raise PartialDataUnavailable("funding_rate")
        if direction == Direction.LONG:
            return snapshot.funding_rate <= 0
        return snapshot.funding_rate >= 0

    def check_open_interest(self, direction: Direction, snapshot: MarketConditionSnapshot) -> bool:
        if snapshot.open_interest is None or not snapshot.open_interest_avg:
            raise PartialDataUnavailable("open_interest")
        return snapshot.open_interest >= snapshot.open_interest_avg * (1 + self.config.oi_growth_min)
