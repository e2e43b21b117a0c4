"""Logging helpers."""

from .logger import JSONFormatter, PerformanceLogger, TradingLogger, setup_logging, get_trading_logger

__all__ = [
    'JSONFormatter',
    'PerformanceLogger',
    'TradingLogger',
    'setup_logging',
    'get_trading_logger',
]
