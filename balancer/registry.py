"""
balancer/registry.py

ProviderRegistry - fixed pool of upstream JSON-RPC providers.

Provider records are created once at startup and addressed by index.
Every mutation goes through a registry accessor that holds the registry
lock for the duration of a single field update; the lock is never held
across an await.
"""
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from .rate_limit import min_interval, remaining_wait

logger = logging.getLogger(__name__)

# A provider within this many blocks of the best known height counts as in sync
SYNC_TOLERANCE_BLOCKS = 1


@dataclass
class Provider:
    """One upstream endpoint and its mutable runtime state."""
    index: int
    name: str
    url: str
    rate_limit: float  # requests per second
    max_errors: int
    priority: int = 0  # Lower = preferred
    last_request_at: Optional[float] = None  # clock() value
    error_count: int = 0
    block_height: Optional[int] = None
    last_health_check: Optional[float] = None  # wall clock (time.time())

    @property
    def available(self) -> bool:
        return self.error_count < self.max_errors

    @property
    def min_interval(self) -> float:
        return min_interval(self.rate_limit)


class ProviderRegistry:
    """
    Owns the provider records.

    Features:
    - Index-stable arena of providers (no runtime add/remove)
    - Narrow accessors for request timestamps and error budgets
    - Health fields written only through record_block_height()
    """

    def __init__(self, providers: Iterable[Provider], clock: Callable[[], float] = time.monotonic):
        self._providers: List[Provider] = list(providers)
        if not self._providers:
            raise ValueError("ProviderRegistry needs at least one provider")
        for i, p in enumerate(self._providers):
            p.index = i
        self._clock = clock
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, provider_settings, clock: Callable[[], float] = time.monotonic) -> "ProviderRegistry":
        """Build a registry from config.settings.ProviderSettings entries."""
        providers = [
            Provider(
                index=i,
                name=s.name,
                url=s.url,
                rate_limit=s.rate_limit,
                max_errors=s.max_errors,
                priority=s.priority,
            )
            for i, s in enumerate(provider_settings)
        ]
        for p in providers:
            logger.info(
                f"[registry] Provider {p.name} (priority={p.priority}, "
                f"rate_limit={p.rate_limit}/s, max_errors={p.max_errors})"
            )
        return cls(providers, clock=clock)

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    def __len__(self) -> int:
        return len(self._providers)

    def __iter__(self) -> Iterator[Provider]:
        return iter(list(self._providers))

    def __getitem__(self, index: int) -> Provider:
        return self._providers[index]

    def get(self, name: str) -> Optional[Provider]:
        for p in self._providers:
            if p.name == name:
                return p
        return None

    def available(self) -> List[Provider]:
        """Providers under their error budget, in priority order (stable)."""
        with self._lock:
            candidates = [p for p in self._providers if p.available]
        return sorted(candidates, key=lambda p: p.priority)

    def is_valid_index(self, index: int) -> bool:
        return 0 <= index < len(self._providers)

    # ------------------------------------------------------------------
    # Request bookkeeping
    # ------------------------------------------------------------------

    def wait_time(self, provider: Provider, now: Optional[float] = None) -> float:
        """Seconds until the provider may be called again (never negative)."""
        if now is None:
            now = self._clock()
        with self._lock:
            last = provider.last_request_at
        return remaining_wait(provider.rate_limit, last, now)

    def mark_request(self, provider: Provider) -> float:
        """Stamp the provider's last request time with the current clock."""
        now = self._clock()
        with self._lock:
            provider.last_request_at = now
        return now

    def record_success(self, provider: Provider) -> int:
        with self._lock:
            provider.error_count = max(0, provider.error_count - 1)
            return provider.error_count

    def record_failure(self, provider: Provider) -> int:
        with self._lock:
            provider.error_count += 1
            count = provider.error_count
        if count == provider.max_errors:
            logger.warning(f"[registry] {provider.name} exhausted its error budget ({count}/{provider.max_errors})")
        return count

    def reset_error_budgets(self) -> None:
        """Halve every provider's error count (circuit-breaker recovery)."""
        with self._lock:
            before = {p.name: p.error_count for p in self._providers}
            for p in self._providers:
                p.error_count = p.error_count // 2
        logger.warning(f"[registry] All providers over budget, halving error counts: {before}")

    # ------------------------------------------------------------------
    # Health fields
    # ------------------------------------------------------------------

    def record_block_height(self, provider: Provider, height: int, checked_at: Optional[float] = None) -> None:
        with self._lock:
            provider.block_height = height
            provider.last_health_check = checked_at if checked_at is not None else time.time()

    def best_block_height(self, providers: Optional[Iterable[Provider]] = None) -> Optional[int]:
        pool = self._providers if providers is None else providers
        with self._lock:
            heights = [p.block_height for p in pool if p.block_height is not None]
        return max(heights) if heights else None

    def snapshot(self) -> List[Dict[str, Any]]:
        """Diagnostic view of every provider."""
        best = self.best_block_height()
        rows = []
        with self._lock:
            for p in self._providers:
                behind = None
                if p.block_height is not None and best is not None:
                    behind = best - p.block_height
                if behind is None:
                    sync_status = "unknown"
                elif behind <= SYNC_TOLERANCE_BLOCKS:
                    sync_status = "synced"
                else:
                    sync_status = "lagging"
                checked = None
                if p.last_health_check is not None:
                    checked = datetime.fromtimestamp(p.last_health_check, tz=timezone.utc).isoformat()
                rows.append({
                    "name": p.name,
                    "available": p.available,
                    "errorCount": p.error_count,
                    "maxErrors": p.max_errors,
                    "rateLimit": p.rate_limit,
                    "priority": p.priority,
                    "blockHeight": p.block_height,
                    "lastHealthCheck": checked,
                    "blocksBehind": behind,
                    "syncStatus": sync_status,
                })
        return rows
