"""
Error taxonomy for the decision core.

Stages raise these; the pipeline and the review stage decide which of them
collapse into HOLD / REJECT and which propagate to the caller.
"""

from typing import Optional


class EdgeEngineError(Exception):
    """Base exception for the decision core."""

    def __init__(self, message: str, symbol: Optional[str] = None):
        super().__init__(message)
        self.symbol = symbol


class InsufficientHistory(EdgeEngineError):
    """Not enough bars to build a profile or classify trend."""

    def __init__(self, required: int, available: int, symbol: Optional[str] = None):
        super().__init__(
            f"Insufficient history: need {required} bars, got {available}",
            symbol=symbol,
        )
        self.required = required
        self.available = available


class PartialDataUnavailable(EdgeEngineError):
    """A market-condition input is missing for this cycle."""

    def __init__(self, field: str, symbol: Optional[str] = None):
        super().__init__(f"Market condition input unavailable: {field}", symbol=symbol)
        self.field = field


class InconsistentScore(EdgeEngineError):
    """Breakout and condition scores diverge beyond the allowed spread."""

    def __init__(self, score_b: float, score_c: float, limit: float, symbol: Optional[str] = None):
        super().__init__(
            f"Score divergence |{score_b:.3f} - {score_c:.3f}| exceeds {limit:.2f}",
            symbol=symbol,
        )
        self.score_b = score_b
        self.score_c = score_c
        self.limit = limit


class ReviewUnavailable(EdgeEngineError):
    """Risk-review oracle failed, timed out, or returned garbage."""


class PositionNotFound(EdgeEngineError):
    """Close requested for a symbol with no persisted position record."""

    def __init__(self, symbol: str):
        super().__init__(f"No persisted position record for {symbol}", symbol=symbol)


class DuplicatePosition(EdgeEngineError):
    """Open requested while a live position already exists for the symbol."""

    def __init__(self, symbol: str):
        super().__init__(f"Live position already exists for {symbol}", symbol=symbol)
