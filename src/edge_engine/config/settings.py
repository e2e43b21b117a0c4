"""
Configuration models using Pydantic for type-safe validation.

This module defines all configuration models for the decision core:
- SystemConfig: Log level and format
- ProfileConfig: Volume distribution window and buckets
- BreakoutConfig: Edge breakout thresholds and check weights
- ConditionConfig: Market condition thresholds
- FusionConfig: Score weights, signal floor, stop/take distances
- TrendConfig / GateConfig: Regime classification and gating
- RiskReviewConfig: Oracle endpoint and deterministic overrides
- PositionConfig: Cache TTL, exchange flavour, sizing
- PipelineConfig: Symbols and cycle deadline
"""

from typing import List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum


# ============================================================================
# Enums for Configuration
# ============================================================================

class LogLevel(str, Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ExchangeType(str, Enum):
    """Exchange flavour used for symbol rendering."""
    BINANCE = "binance"
    OKX = "okx"


class TradeDirection(str, Enum):
    """Trade direction as it appears in configuration."""
    LONG = "long"
    SHORT = "short"


# ============================================================================
# System Configuration
# ============================================================================

class SystemConfig(BaseModel):
    """System-wide settings."""

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )

    json_logs: bool = Field(
        default=True,
        description="Emit structured JSON log lines"
    )

    log_file: Optional[str] = Field(
        default=None,
        description="Optional log file path"
    )

    class Config:
        use_enum_values = True


# ============================================================================
# Analytics Configuration
# ============================================================================

class ProfileConfig(BaseModel):
    """Volume distribution (value area) configuration."""

    window: int = Field(
        default=720,
        ge=2,
        description="Bars in the rolling profile window"
    )

    bucket_count: int = Field(
        default=48,
        ge=1,
        le=1000,
        description="Fixed price buckets across the window range"
    )

    value_area_pct: float = Field(
        default=0.70,
        gt=0.0,
        le=1.0,
        description="Share of volume enclosed by the value area"
    )


class TrendConfig(BaseModel):
    """EMA trend classification configuration."""

    fast_period: int = Field(default=20, ge=1)
    mid_period: int = Field(default=50, ge=1)
    slow_period: int = Field(default=100, ge=1)

    min_gap_pct: float = Field(
        default=0.005,
        ge=0.0,
        description="Minimum |EMA fast - EMA mid| / EMA mid for a trend"
    )

    strength_scale_pct: float = Field(
        default=0.05,
        gt=0.0,
        description="Gap at which trend strength saturates at 1.0"
    )

    @validator('slow_period')
    def periods_ordered(cls, v, values):
        """Validate fast < mid < slow."""
        fast = values.get('fast_period')
        mid = values.get('mid_period')
        if fast is not None and mid is not None and not (fast < mid < v):
            raise ValueError('EMA periods must satisfy fast < mid < slow')
        return v


# ============================================================================
# Decision Configuration
# ============================================================================

class BreakoutConfig(BaseModel):
    """Edge breakout check thresholds and weights."""

    edge_band_pct: float = Field(
        default=0.03,
        gt=0.0,
        le=0.5,
        description="Band outside VAL/VAH that still counts as the edge"
    )

    require_edge: bool = Field(
        default=True,
        description="Score zero unless price sits at a value-area edge"
    )

    local_lookback: int = Field(default=20, ge=2)
    short_lookback: int = Field(default=5, ge=1)

    local_z_threshold: float = Field(default=2.3)
    global_z_threshold: float = Field(default=2.0)
    prev_ratio_threshold: float = Field(default=2.2)
    short_avg_ratio_threshold: float = Field(default=1.9)
    distribution_strength_threshold: float = Field(default=1.3)
    continuation_ratio: float = Field(default=0.6)

    edge_weight: float = Field(default=0.25, ge=0.0)
    local_z_weight: float = Field(default=0.20, ge=0.0)
    global_z_weight: float = Field(default=0.15, ge=0.0)
    prev_ratio_weight: float = Field(default=0.20, ge=0.0)
    short_avg_weight: float = Field(default=0.10, ge=0.0)
    distribution_weight: float = Field(default=0.05, ge=0.0)
    continuation_weight: float = Field(default=0.03, ge=0.0)
    session_weight: float = Field(default=0.02, ge=0.0)


class ConditionConfig(BaseModel):
    """Market condition thresholds."""

    imbalance_threshold: float = Field(
        default=0.10,
        ge=0.0,
        le=1.0,
        description="Minimum signed order-book imbalance in the trade direction"
    )

    book_depth: int = Field(
        default=10,
        ge=1,
        description="Order-book levels per side considered"
    )

    oi_growth_min: float = Field(
        default=0.0,
        description="Minimum open-interest growth over its average"
    )


class FusionConfig(BaseModel):
    """Score fusion and protective distances."""

    breakout_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    condition_weight: float = Field(default=0.4, ge=0.0, le=1.0)

    signal_floor: float = Field(
        default=0.78,
        ge=0.0,
        le=1.0,
        description="Final score needed for a directional signal"
    )

    medium_floor: float = Field(
        default=0.65,
        ge=0.0,
        le=1.0,
        description="Lower edge of the MEDIUM confidence band"
    )

    stop_loss_pct: float = Field(default=0.006, gt=0.0, lt=1.0)
    take_profit_pct: float = Field(default=0.012, gt=0.0)

    @validator('condition_weight')
    def weights_sum_to_one(cls, v, values):
        """Validate that the two weights sum to 1."""
        if 'breakout_weight' in values and abs(values['breakout_weight'] + v - 1.0) > 1e-9:
            raise ValueError('breakout_weight + condition_weight must equal 1.0')
        return v

    @validator('medium_floor')
    def medium_below_floor(cls, v, values):
        """Validate that medium_floor <= signal_floor."""
        if 'signal_floor' in values and v > values['signal_floor']:
            raise ValueError('medium_floor must be <= signal_floor')
        return v


class GateConfig(BaseModel):
    """Regime gate thresholds."""

    disabled_direction: Optional[TradeDirection] = Field(
        default=None,
        description="Direction rejected unconditionally (deployment bias)"
    )

    ranging_threshold: float = Field(default=0.60, ge=0.0, le=1.0)
    with_trend_threshold: float = Field(default=0.45, ge=0.0, le=1.0)
    counter_trend_threshold: float = Field(default=0.65, ge=0.0, le=1.0)
    unknown_threshold: float = Field(default=0.55, ge=0.0, le=1.0)

    class Config:
        use_enum_values = True


class RiskReviewConfig(BaseModel):
    """Risk review oracle and override configuration."""

    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI-compatible API base URL"
    )

    api_key_env: str = Field(
        default="RISK_REVIEW_API_KEY",
        description="Environment variable name for the oracle API key"
    )

    model: str = Field(default="gpt-4o-mini")

    timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        le=120.0,
        description="Oracle call timeout"
    )

    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=500, ge=16)

    max_score_divergence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Reject when |score_b - score_c| exceeds this"
    )

    min_final_score: float = Field(
        default=0.78,
        ge=0.0,
        le=1.0,
        description="Reject when final score is below this"
    )


# ============================================================================
# Position Configuration
# ============================================================================

class PositionConfig(BaseModel):
    """Position cache and sizing configuration."""

    cache_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Cached position entries expire after this"
    )

    exchange_type: ExchangeType = Field(
        default=ExchangeType.BINANCE,
        description="Exchange flavour for symbol rendering"
    )

    default_quote: str = Field(default="USDT")

    amount_usd: float = Field(
        default=100.0,
        gt=0.0,
        description="Margin committed per position (USD)"
    )

    leverage: int = Field(default=10, ge=1, le=125)

    size_decimals: int = Field(
        default=3,
        ge=0,
        le=8,
        description="Order size precision"
    )

    monitor_interval_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Seconds between stop-loss / take-profit checks"
    )

    class Config:
        use_enum_values = True


# ============================================================================
# Pipeline Configuration
# ============================================================================

class PipelineConfig(BaseModel):
    """Evaluation cycle configuration."""

    symbols: List[str] = Field(
        default=["BTC/USDT", "ETH/USDT", "SOL/USDT"],
        description="Instruments evaluated each cycle"
    )

    timeframe: str = Field(default="2m")

    cycle_deadline_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Abandon the cycle (HOLD) after this"
    )

    auto_open: bool = Field(
        default=False,
        description="Open positions for approved cycles"
    )


# ============================================================================
# Complete Application Configuration
# ============================================================================

class AppConfig(BaseModel):
    """Complete application configuration."""

    system: SystemConfig = Field(default_factory=SystemConfig)
    profile: ProfileConfig = Field(default_factory=ProfileConfig)
    breakout: BreakoutConfig = Field(default_factory=BreakoutConfig)
    conditions: ConditionConfig = Field(default_factory=ConditionConfig)
    fusion: FusionConfig = Field(default_factory=FusionConfig)
    trend: TrendConfig = Field(default_factory=TrendConfig)
    gate: GateConfig = Field(default_factory=GateConfig)
    risk_review: RiskReviewConfig = Field(default_factory=RiskReviewConfig)
    position: PositionConfig = Field(default_factory=PositionConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    class Config:
        use_enum_values = True
