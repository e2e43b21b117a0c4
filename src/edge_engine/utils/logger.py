"""
Logging utilities.

Provides structured logging with:
- JSON formatting for production
- Operation timing
- Decision / position / risk / audit helpers
"""

import logging
import json
import sys
import time
from datetime import datetime
from typing import Any, Dict, Optional
from pathlib import Path
import threading
from contextlib import contextmanager


# Extra attributes copied into JSON log lines when present on the record
EXTRA_FIELDS = (
    'symbol',
    'stage',
    'signal',
    'confidence',
    'score_b',
    'score_c',
    'final_score',
    'regime',
    'verdict',
    'reason',
    'execution_time',
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class PerformanceLogger:
    """Logger for tracking stage timings."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._start_times: Dict[str, float] = {}
        self._lock = threading.Lock()

    @contextmanager
    def timer(self, operation: str, **context):
        """Context manager timing a block and logging its duration at DEBUG."""
        start_time = time.perf_counter()
        operation_id = f"{operation}_{threading.get_ident()}_{start_time}"

        try:
            with self._lock:
                self._start_times[operation_id] = start_time
            yield
        finally:
            execution_time = time.perf_counter() - start_time

            with self._lock:
                self._start_times.pop(operation_id, None)

            extra = {'execution_time': execution_time, **context}
            self.logger.debug(f"Operation completed: {operation}", extra=extra)


class TradingLogger:
    """Specialized logger for decision and position events."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.performance = PerformanceLogger(self.logger)

    def trade_signal(self, symbol: str, signal: str, final_score: float, **context):
        """Log a fused decision."""
        extra = {'symbol': symbol, 'signal': signal, 'final_score': final_score, **context}
        self.logger.info(f"Signal: {signal} for {symbol} (final={final_score:.3f})", extra=extra)

    def position_event(self, symbol: str, event: str, size: float, price: float, **context):
        """Log position lifecycle events."""
        extra = {'symbol': symbol, 'stage': 'position', **context}
        self.logger.info(f"Position {event}: {symbol} size={size} @ {price}", extra=extra)

    def risk_alert(self, alert_type: str, severity: str, message: str, **context):
        """Log risk review rejections and overrides."""
        extra = {'stage': 'risk_review', **context}
        if severity.lower() in ['high', 'critical']:
            self.logger.error(f"Risk Alert [{alert_type}]: {message}", extra=extra)
        else:
            self.logger.warning(f"Risk Alert [{alert_type}]: {message}", extra=extra)

    def cycle_audit(self, record: Dict[str, Any]):
        """Log the per-cycle audit record."""
        extra = {k: record.get(k) for k in EXTRA_FIELDS if k in record}
        self.logger.info(
            f"Cycle audit {record.get('symbol')}: {record.get('signal')} "
            f"B={record.get('score_b', 0):.3f} C={record.get('score_c', 0):.3f} "
            f"final={record.get('final_score', 0):.3f} regime={record.get('regime')} "
            f"verdict={record.get('verdict')} reason={record.get('reason')}",
            extra=extra
        )


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = True
) -> logging.Logger:
    """
    Setup logging configuration on the root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        json_format: Use JSON formatting

    Returns:
        Configured root logger
    """
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, str(log_level).upper()))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_trading_logger(name: str) -> TradingLogger:
    """Get a trading-specific logger instance."""
    return TradingLogger(name)
