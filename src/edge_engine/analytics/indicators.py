"""
Technical indicators - EMA, z-score, volume ratios.

Implements:
1. EMA (Exponential Moving Average) seeded with the first close
2. Population mean / standard deviation and z-score
3. Volume ratio helpers used by breakout checks
"""

import logging
from typing import Sequence, Tuple
import numpy as np

logger = logging.getLogger(__name__)


def calculate_ema(prices: Sequence[float], period: int) -> float:
    """
    Calculate Exponential Moving Average (EMA).

    EMA Formula:
        EMA = (Close - EMA_prev) × multiplier + EMA_prev
        where multiplier = 2 / (period + 1)

    The first close seeds the EMA, so any non-empty series yields a value.

    Args:
        prices: Closing prices (most recent last)
        period: EMA period (e.g., 20, 50, 100)

    Returns:
        Current EMA value
    """
    if len(prices) == 0:
        raise ValueError("EMA requires at least one price")
    if period < 1:
        raise ValueError("EMA period must be >= 1")

    prices_array = np.asarray(prices, dtype=float)
    multiplier = 2.0 / (period + 1)

    ema = float(prices_array[0])
    for price in prices_array[1:]:
        ema = (float(price) - ema) * multiplier + ema

    return ema


def mean_std(values: Sequence[float]) -> Tuple[float, float]:
    """Population mean and standard deviation; (0, 0) for an empty series."""
    if len(values) == 0:
        return 0.0, 0.0
    arr = np.asarray(values, dtype=float)
    return float(arr.mean()), float(arr.std())


def zscore(value: float, values: Sequence[float]) -> float:
    """
    Z-score of ``value`` against ``values`` (population std).

    Returns 0.0 when the reference series has zero spread.
    """
    mean, std = mean_std(values)
    if std == 0:
        return 0.0
    return (value - mean) / std


def safe_ratio(numerator: float, denominator: float) -> float:
    """Ratio that yields 0.0 instead of dividing by zero."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator
