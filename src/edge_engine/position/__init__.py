"""
Position management - models, TTL cache, the serialised manager and the
stop loss / take profit monitor.
"""

from .models import Position, PositionSide, PositionState, ExitReason, coerce_exit_reason
from .cache import PositionCache, CacheEntry
from .interfaces import ExchangeGateway, PositionStore, InMemoryPositionStore
from .manager import PositionManager, normalize_symbol, exchange_symbol
from .monitor import PositionMonitor, exit_reason_for

__all__ = [
    'Position',
    'PositionSide',
    'PositionState',
    'ExitReason',
    'PositionCache',
    'CacheEntry',
    'ExchangeGateway',
    'PositionStore',
    'InMemoryPositionStore',
    'PositionManager',
    'normalize_symbol',
    'exchange_symbol',
    'PositionMonitor',
    'exit_reason_for',
    'coerce_exit_reason',
]
