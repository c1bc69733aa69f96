"""
balancer/dispatcher.py

Dispatcher - runs one logical JSON-RPC request against the provider pool.

Per request:
    PENDING -> cache hit -> DONE
    PENDING -> ATTEMPTING -> SUCCESS | RPC_ERROR -> DONE
                          -> RETRYABLE_FAILURE -> ATTEMPTING ... -> EXHAUSTED (raise)
"""
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional

from .cache import ResponseCache, cache_key
from .errors import ExhaustedError, RateLimitedError, TransportError, UpstreamError
from .methods import RATE_LIMIT_ERROR_CODES, is_sync_critical
from .rate_limit import Sleep, throttle
from .registry import Provider, ProviderRegistry
from .selector import Selector
from .stats import RequestStats

logger = logging.getLogger(__name__)

Transport = Callable[[Provider, Dict[str, Any], float], Awaitable[Dict[str, Any]]]


def is_rate_limit_error(error: Any) -> bool:
    """True for a JSON-RPC error object that signals upstream throttling."""
    if not isinstance(error, dict):
        return False
    if error.get("code") in RATE_LIMIT_ERROR_CODES:
        return True
    return "rate limit" in str(error.get("message", "")).lower()


class Dispatcher:
    """
    Cache lookup, then select -> rate-gate -> call -> classify, with retries.

    Outcome classes:
    - Transport failure or upstream rate limit: retryable, penalizes the
      provider; rate limits add a randomized cooldown before the next attempt
    - Well-formed RPC error: returned as the answer immediately, counted as a
      success, never cached
    - Success: credited to the provider, cached when the method is cacheable
    """

    DEFAULT_MAX_RETRIES = 3
    REQUEST_TIMEOUT_SEC = 30
    BACKOFF_BASE_SEC = 1.0
    BACKOFF_MAX_SEC = 5.0
    RATE_LIMIT_COOLDOWN_SEC = (2.0, 3.0)

    def __init__(
        self,
        registry: ProviderRegistry,
        selector: Selector,
        cache: ResponseCache,
        stats: RequestStats,
        transport: Transport,
        request_timeout: float = REQUEST_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: Sleep = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ):
        """
        Initialize Dispatcher.

        Args:
            registry: Provider pool
            selector: Chooses the provider for each attempt
            cache: Response cache for read-only methods
            stats: Request counters
            transport: Coroutine performing the outbound call
            request_timeout: Per-attempt timeout (seconds)
            max_retries: Default attempt budget per request
            sleep: Async sleep used for rate gating, cooldowns and backoff
            jitter: Random source for the rate-limit cooldown
        """
        self._registry = registry
        self._selector = selector
        self._cache = cache
        self._stats = stats
        self._transport = transport
        self._request_timeout = request_timeout
        self._max_retries = max_retries
        self._sleep = sleep
        self._jitter = jitter

    @classmethod
    def backoff_delay(cls, attempt: int) -> float:
        """Delay after failed attempt number `attempt` (0-based)."""
        return min(cls.BACKOFF_BASE_SEC * (2 ** attempt), cls.BACKOFF_MAX_SEC)

    async def handle(
        self,
        request: Dict[str, Any],
        client_id: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Resolve one JSON-RPC request.

        Args:
            request: Parsed JSON-RPC request object
            client_id: Caller identity for sticky sessions
            max_retries: Attempt budget (defaults to the dispatcher's)

        Returns:
            JSON-RPC response object (result or upstream error)

        Raises:
            ExhaustedError: every attempt failed
        """
        attempts = self._max_retries if max_retries is None else max_retries
        if attempts < 1:
            raise ValueError(f"max_retries must be >= 1, got {attempts}")

        self._stats.record_request()
        method = request.get("method")

        cached = self._cache.lookup(request)
        if cached is not None:
            logger.debug(f"[dispatcher] Cache hit for {method}")
            return cached

        prefer_sync = isinstance(method, str) and is_sync_critical(method)
        last_error: Optional[UpstreamError] = None

        for attempt in range(attempts):
            provider = self._selector.select(client_id, prefer_sync=prefer_sync)
            await throttle(self._registry, provider, self._sleep)
            self._stats.record_attempt(provider.name)

            try:
                body = await self._call(provider, request)
            except UpstreamError as e:
                last_error = e
                self._registry.record_failure(provider)
                self._stats.record_attempt_failure(provider.name)
                logger.warning(f"[dispatcher] [{provider.name}] Attempt {attempt + 1}/{attempts} for {method} failed: {e}")

                if attempt == attempts - 1:
                    break
                if e.rate_limited:
                    await self._sleep(self._jitter(*self.RATE_LIMIT_COOLDOWN_SEC))
                await self._sleep(self.backoff_delay(attempt))
                continue

            self._registry.record_success(provider)
            self._stats.record_success(provider.name)

            if body.get("error") is not None:
                logger.info(f"[dispatcher] [{provider.name}] {method} answered with RPC error: {body.get('error')}")
            else:
                key = cache_key(request)
                if key is not None:
                    self._cache.put(key, body)
                logger.debug(f"[dispatcher] [{provider.name}] {method} successful")
            return body

        self._stats.record_exhausted()
        logger.error(f"[dispatcher] {method} failed after {attempts} attempts: {last_error}")
        raise ExhaustedError(f"All {attempts} attempts failed: {last_error}", attempts=attempts) from last_error

    async def _call(self, provider: Provider, request: Dict[str, Any]) -> Dict[str, Any]:
        try:
            body = await asyncio.wait_for(
                self._transport(provider, request, self._request_timeout),
                timeout=self._request_timeout,
            )
        except asyncio.TimeoutError:
            raise TransportError(f"Timeout after {self._request_timeout}s", provider=provider.name)

        if is_rate_limit_error(body.get("error")):
            raise RateLimitedError(f"Rate limit reached on {provider.name}: {body['error']}", provider=provider.name)
        return body
