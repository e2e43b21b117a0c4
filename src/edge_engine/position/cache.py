"""
Short-lived position cache.

Entries expire ``cache_timeout`` seconds after their last update and are
evicted on access. The clock is injectable so expiry can be tested without
sleeping.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar
import logging
import threading
import time

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Cached value and the clock reading of its last update."""
    value: T
    last_update: float


class PositionCache(Generic[T]):
    """TTL map of symbol -> cached position."""

    def __init__(
        self,
        cache_timeout: float = 30.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.cache_timeout = cache_timeout
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.RLock()

    def _is_fresh(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.last_update <= self.cache_timeout

    def get(self, symbol: str) -> Optional[T]:
        """Return the cached value, evicting it if stale."""
        with self._lock:
            entry = self._entries.get(symbol)
            if entry is None:
                return None
            if not self._is_fresh(entry, self._clock()):
                del self._entries[symbol]
                logger.debug(f"Evicted stale cache entry for {symbol}")
                return None
            return entry.value

    def set(self, symbol: str, value: T) -> None:
        with self._lock:
            self._entries[symbol] = CacheEntry(value=value, last_update=self._clock())

    def clear(self, symbol: Optional[str] = None) -> None:
        """Drop one symbol, or everything when ``symbol`` is None."""
        with self._lock:
            if symbol is None:
                self._entries.clear()
            else:
                self._entries.pop(symbol, None)

    def get_all(self) -> Dict[str, T]:
        """All fresh entries; stale ones are pruned."""
        with self._lock:
            now = self._clock()
            stale = [s for s, e in self._entries.items() if not self._is_fresh(e, now)]
            for symbol in stale:
                del self._entries[symbol]
            return {s: e.value for s, e in self._entries.items()}

    def is_valid(self, symbol: str) -> bool:
        with self._lock:
            entry = self._entries.get(symbol)
            return entry is not None and self._is_fresh(entry, self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
