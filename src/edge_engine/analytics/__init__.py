"""
Analytics - bar model, indicators, volume distribution and trend state.
"""

from .klines import KlineBar, merge_bars
from .indicators import calculate_ema, mean_std, zscore, safe_ratio
from .volume_profile import VolumeDistributionAnalyzer, VolumeProfile
from .trend import MarketRegime, TrendState, TrendStateClassifier

__all__ = [
    'KlineBar',
    'merge_bars',
    'calculate_ema',
    'mean_std',
    'zscore',
    'safe_ratio',
    'VolumeDistributionAnalyzer',
    'VolumeProfile',
    'MarketRegime',
    'TrendState',
    'TrendStateClassifier',
]
