"""
balancer/monitor.py

HealthTracker - periodic block-height probing of every provider.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .methods import BLOCK_HEIGHT_METHOD
from .registry import Provider, ProviderRegistry

logger = logging.getLogger(__name__)

Transport = Callable[[Provider, Dict[str, Any], float], Awaitable[Dict[str, Any]]]


@dataclass
class ProbeResult:
    """Outcome of one height probe."""
    provider: str
    height: Optional[int] = None
    latency_ms: float = 0.0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_block_height(body: Dict[str, Any]) -> int:
    """Decode an eth_blockNumber response ("0x..." hex quantity)."""
    if "error" in body:
        raise ValueError(f"RPC error: {body['error']}")
    result = body.get("result")
    if isinstance(result, int):
        return result
    if not isinstance(result, str):
        raise ValueError(f"Unexpected block number result: {result!r}")
    return int(result, 16)


class HealthTracker:
    """
    Chain-height monitor for the provider pool.

    Features:
    - Concurrent probe of every provider, short timeout
    - Probe failures keep previous values and never touch error budgets
    - Warns when the observed heights spread more than MAX_SPREAD_BLOCKS

    Results feed the Selector's preferSync filter only.
    """

    DEFAULT_INTERVAL_SEC = 30
    DEFAULT_TIMEOUT_SEC = 5
    MAX_SPREAD_BLOCKS = 2

    def __init__(
        self,
        registry: ProviderRegistry,
        transport: Transport,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        wall_clock: Callable[[], float] = time.time,
    ):
        """
        Initialize HealthTracker.

        Args:
            registry: Providers to probe and update
            transport: Coroutine performing the JSON-RPC call
            timeout_sec: Per-probe timeout (seconds)
            wall_clock: Source for lastHealthCheck timestamps
        """
        self._registry = registry
        self._transport = transport
        self._timeout_sec = timeout_sec
        self._wall_clock = wall_clock
        self._last_results: Dict[str, ProbeResult] = {}

    async def check_provider(self, provider: Provider) -> ProbeResult:
        payload = {"jsonrpc": "2.0", "id": 1, "method": BLOCK_HEIGHT_METHOD, "params": []}
        start = time.perf_counter()
        try:
            body = await asyncio.wait_for(
                self._transport(provider, payload, self._timeout_sec),
                timeout=self._timeout_sec,
            )
            height = parse_block_height(body)
        except Exception as e:
            latency_ms = (time.perf_counter() - start) * 1000
            reason = str(e) or type(e).__name__
            logger.warning(f"[health] {provider.name} probe failed: {reason}")
            return ProbeResult(provider=provider.name, latency_ms=latency_ms, error=reason)

        latency_ms = (time.perf_counter() - start) * 1000
        self._registry.record_block_height(provider, height, self._wall_clock())
        return ProbeResult(provider=provider.name, height=height, latency_ms=latency_ms)

    async def check_all(self) -> List[ProbeResult]:
        """Probe every provider concurrently, then report sync spread."""
        providers = list(self._registry)
        results = await asyncio.gather(*(self.check_provider(p) for p in providers))
        self._last_results = {r.provider: r for r in results}
        self.report_spread()
        return list(results)

    def report_spread(self) -> List[str]:
        """
        Warn about providers lagging the best height by more than MAX_SPREAD_BLOCKS.

        Returns:
            Names of lagging providers
        """
        known = [p for p in self._registry if p.block_height is not None]
        if not known:
            return []
        best = max(p.block_height for p in known)
        worst = min(p.block_height for p in known)
        if best - worst <= self.MAX_SPREAD_BLOCKS:
            return []
        lagging = [p for p in known if best - p.block_height > self.MAX_SPREAD_BLOCKS]
        for p in lagging:
            logger.warning(f"[health] {p.name} is {best - p.block_height} blocks behind (height {p.block_height}, best {best})")
        return [p.name for p in lagging]

    def get_last_results(self) -> Dict[str, ProbeResult]:
        return dict(self._last_results)
