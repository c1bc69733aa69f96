"""
balancer/client.py

LoadBalancer - facade wiring the registry, selector, cache, sessions,
health tracker and dispatcher, and owning their background workers.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .cache import ResponseCache
from .dispatcher import Dispatcher, Transport
from .monitor import HealthTracker
from .rate_limit import Sleep
from .registry import ProviderRegistry
from .selector import Selector
from .sessions import SessionStore
from .stats import RequestStats
from .transport import HttpTransport
from .workers import PeriodicTask

logger = logging.getLogger(__name__)


class LoadBalancer:
    """
    JSON-RPC load balancer over a fixed provider pool.

    Supports:
    - Priority / error-budget / rate-limit aware provider selection
    - Sticky client sessions (5 min idle timeout)
    - 10s response cache for read-only methods
    - Retries with exponential backoff and rate-limit cooldown
    - Background chain-height probing for sync-critical methods

    Usage:
        balancer = LoadBalancer.from_settings(settings)
        await balancer.start()
        response = await balancer.handle(request, client_id="10.0.0.1")
        await balancer.stop()
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        transport: Optional[Transport] = None,
        max_retries: int = Dispatcher.DEFAULT_MAX_RETRIES,
        request_timeout: float = Dispatcher.REQUEST_TIMEOUT_SEC,
        health_check_interval: float = HealthTracker.DEFAULT_INTERVAL_SEC,
        health_check_timeout: float = HealthTracker.DEFAULT_TIMEOUT_SEC,
        cache_ttl: float = ResponseCache.DEFAULT_TTL_SEC,
        session_timeout: float = SessionStore.DEFAULT_TIMEOUT_SEC,
        sweep_interval: float = 60,
        sleep: Optional[Sleep] = None,
    ):
        """
        Initialize LoadBalancer.

        Args:
            registry: Provider pool (its clock drives cache and session expiry)
            transport: Outbound call coroutine; an aiohttp HttpTransport when None
            max_retries: Attempts per request
            request_timeout: Per-attempt timeout (seconds)
            health_check_interval: Seconds between height sweeps
            health_check_timeout: Per-probe timeout (seconds)
            cache_ttl: Response cache TTL (seconds)
            session_timeout: Sticky session idle timeout (seconds)
            sweep_interval: Seconds between cache/session sweeps
            sleep: Async sleep override for the dispatcher
        """
        self.registry = registry
        self._http: Optional[HttpTransport] = None
        if transport is None:
            self._http = HttpTransport()
            transport = self._http

        self.stats = RequestStats(p.name for p in registry)
        self.cache = ResponseCache(ttl_sec=cache_ttl, clock=registry.clock)
        self.sessions = SessionStore(registry, timeout_sec=session_timeout)
        self.selector = Selector(registry, self.sessions)
        self.health = HealthTracker(registry, transport, timeout_sec=health_check_timeout)

        dispatcher_kwargs: Dict[str, Any] = {}
        if sleep is not None:
            dispatcher_kwargs["sleep"] = sleep
        self.dispatcher = Dispatcher(
            registry,
            self.selector,
            self.cache,
            self.stats,
            transport,
            request_timeout=request_timeout,
            max_retries=max_retries,
            **dispatcher_kwargs,
        )

        self._workers: List[PeriodicTask] = [
            PeriodicTask("health-check", self.health.check_all, health_check_interval, run_immediately=True),
            PeriodicTask("cache-sweep", self.cache.cleanup_expired, sweep_interval),
            PeriodicTask("session-sweep", self.sessions.cleanup_expired, sweep_interval),
        ]

    @classmethod
    def from_settings(cls, settings, transport: Optional[Transport] = None, clock: Callable[[], float] = time.monotonic) -> "LoadBalancer":
        """Build from config.settings.ProxySettings."""
        registry = ProviderRegistry.from_settings(settings.providers, clock=clock)
        return cls(
            registry,
            transport=transport,
            max_retries=settings.max_retries,
            request_timeout=settings.request_timeout,
            health_check_interval=settings.health_check_interval,
            health_check_timeout=settings.health_check_timeout,
            cache_ttl=settings.cache_ttl,
            session_timeout=settings.session_timeout,
            sweep_interval=settings.sweep_interval,
        )

    async def start(self) -> None:
        """Open the HTTP session and start background workers."""
        if self._http is not None:
            await self._http.open()
        for worker in self._workers:
            worker.start()
        logger.info(f"[balancer] Started with {len(self.registry)} providers")

    async def stop(self) -> None:
        for worker in self._workers:
            await worker.stop()
        if self._http is not None:
            await self._http.close()
        logger.info("[balancer] Stopped")

    async def handle(
        self,
        request: Dict[str, Any],
        client_id: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> Dict[str, Any]:
        return await self.dispatcher.handle(request, client_id=client_id, max_retries=max_retries)

    def health_status(self) -> Dict[str, Any]:
        """Diagnostics snapshot: providers, stats, cache and session sizes."""
        return {
            "providers": self.registry.snapshot(),
            "stats": self.stats.to_dict(),
            "cache": self.cache.get_metrics(),
            "sessions": {"size": len(self.sessions)},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
