# libs/commerce_shared/cache.py
"""
Bounded key/value cache with per-entry expiry.

Capacity eviction removes the entry closest to expiring, not the least
recently used one.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class BoundedTTLCache:
    """Thread-safe TTL cache with a hard size ceiling."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: Any) -> None:
        """Insert or replace ``key``; evicts the nearest-expiring entry when full."""
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                victim = min(self._entries, key=lambda k: self._entries[k].expires_at)
                del self._entries[victim]
                logger.debug("Cache eviction", extra={"key": victim})

            self._entries[key] = CacheEntry(
                value=value, expires_at=self._clock() + self.ttl_seconds
            )
        logger.debug("Cache set", extra={"key": key})

    def lookup(self, key: str) -> Tuple[bool, Any]:
        """
        Look up ``key``.

        Returns:
            ``(True, value)`` on a hit, ``(False, None)`` on a miss or expiry
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("Cache miss", extra={"key": key})
                return False, None

            if self._clock() >= entry.expires_at:
                del self._entries[key]
                logger.debug("Cache entry expired", extra={"key": key})
                return False, None

        logger.debug("Cache hit", extra={"key": key})
        return True, entry.value

    def get(self, key: str, default: Any = None) -> Any:
        hit, value = self.lookup(key)
        return value if hit else default

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("Cache cleared")

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.lookup(key)[0]
