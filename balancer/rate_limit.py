"""
balancer/rate_limit.py

Per-provider request pacing.

There is no limiter object: the minimum gap between two calls to a
provider is derived from its configured requests/second, and the
dispatcher waits out whatever part of that gap has not yet elapsed.
The read-wait-write sequence is not atomic, so concurrent requests may
briefly exceed a provider's nominal rate.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def min_interval(rate_limit: float) -> float:
    """Minimum seconds between two calls at `rate_limit` requests/second."""
    if rate_limit <= 0:
        raise ValueError(f"rate_limit must be positive, got {rate_limit}")
    return 1.0 / rate_limit


def remaining_wait(rate_limit: float, last_request_at: Optional[float], now: float) -> float:
    """Seconds still to wait before the next call is allowed (clamped to 0)."""
    if last_request_at is None:
        return 0.0
    return max(0.0, min_interval(rate_limit) - (now - last_request_at))


async def throttle(registry, provider, sleep: Sleep = asyncio.sleep) -> float:
    """
    Wait until `provider` may be called, then stamp its last request time.

    Returns:
        Seconds spent waiting
    """
    delay = registry.wait_time(provider)
    if delay > 0:
        logger.debug(f"[rate_limit] {provider.name}: sleeping {delay:.3f}s to respect {provider.rate_limit} req/s")
        await sleep(delay)
    registry.mark_request(provider)
    return delay
