"""Configuration models and loader."""

from .settings import (
    AppConfig,
    SystemConfig,
    ProfileConfig,
    BreakoutConfig,
    ConditionConfig,
    FusionConfig,
    TrendConfig,
    GateConfig,
    RiskReviewConfig,
    PositionConfig,
    PipelineConfig,
    ExchangeType,
    TradeDirection,
    LogLevel,
)
from .loader import ConfigLoader

__all__ = [
    'AppConfig',
    'SystemConfig',
    'ProfileConfig',
    'BreakoutConfig',
    'ConditionConfig',
    'FusionConfig',
    'TrendConfig',
    'GateConfig',
    'RiskReviewConfig',
    'PositionConfig',
    'PipelineConfig',
    'ExchangeType',
    'TradeDirection',
    'LogLevel',
    'ConfigLoader',
]
