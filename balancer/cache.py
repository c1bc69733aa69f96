"""
balancer/cache.py

ResponseCache - in-memory TTL cache for read-only JSON-RPC responses.
"""
import copy
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .methods import is_cacheable

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached upstream response."""
    response: Dict[str, Any]
    inserted_at: float


def cache_key(request: Dict[str, Any]) -> Optional[str]:
    """
    Canonical cache key for a JSON-RPC request.

    Returns None unless the method is cacheable. Params are serialized
    exactly as received: order-sensitive, no normalization.
    """
    method = request.get("method")
    if not isinstance(method, str) or not is_cacheable(method):
        return None
    return json.dumps(
        {"method": method, "params": request.get("params", [])},
        separators=(",", ":"),
        ensure_ascii=False,
    )


class ResponseCache:
    """
    TTL cache keyed by cache_key().

    Features:
    - Thread-safe operations
    - Lazy eviction on get() plus cleanup_expired() sweep for cold keys
    - Stores private copies so callers can't mutate cached bodies

    Only genuine upstream successes should be put().
    """

    DEFAULT_TTL_SEC = 10

    def __init__(self, ttl_sec: float = DEFAULT_TTL_SEC, clock: Callable[[], float] = time.monotonic):
        """
        Initialize ResponseCache.

        Args:
            ttl_sec: Lifetime of an entry (seconds)
            clock: Monotonic time source
        """
        self._ttl_sec = ttl_sec
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

        # Metrics
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def ttl_sec(self) -> float:
        return self._ttl_sec

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at >= self._ttl_sec

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Get a cached response.

        Args:
            key: Cache key

        Returns:
            Copy of the cached response, or None if absent/expired
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._expired(entry, now):
                del self._entries[key]
                self._evictions += 1
                self._misses += 1
                return None

            self._hits += 1
            return copy.deepcopy(entry.response)

    def put(self, key: str, response: Dict[str, Any]) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(response=copy.deepcopy(response), inserted_at=self._clock())

    def lookup(self, request: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Cached response for `request`, stamped with its id, or None."""
        key = cache_key(request)
        if key is None:
            return None
        cached = self.get(key)
        if cached is None:
            return None
        cached["id"] = request.get("id")
        return cached

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        """
        Remove all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if self._expired(e, now)]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)
        if expired:
            logger.debug(f"[cache] Evicted {len(expired)} expired entries")
        return len(expired)

    def get_metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
