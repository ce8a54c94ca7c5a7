"""
In-memory TTL cache for IP geolocation results.
Entries expire after a fixed TTL and are evicted lazily on lookup.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger("m365_compromise_engine.cache")


class GeoCache:
    """
    Key-value cache keyed by IP address.
    Features:
      - TTL-based expiration, checked on read
      - Lock-protected container so concurrent workers can insert safely
    """

    def __init__(self, ttl_seconds: int = 3600, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """
        Retrieve cached data if it exists and hasn't expired.
        Returns None if not found or expired; expired entries are removed.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                logger.debug(f"Cache expired for key: {key}")
                return None
        logger.debug(f"Cache hit for key: {key}")
        return value

    def put(self, key: str, value: Any):
        """Store a value with the current timestamp."""
        with self._lock:
            self._entries[key] = (value, self._clock())

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear_expired(self) -> int:
        """Remove all expired entries and return how many were dropped."""
        cutoff = self._clock() - self.ttl_seconds
        with self._lock:
            expired = [k for k, (_, ts) in self._entries.items() if ts < cutoff]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.info(f"Cleared {len(expired)} expired cache entries.")
        return len(expired)
