#!/usr/bin/env python3
"""Smoke test for the RPC load balancer.

Drives the engine against scripted in-process providers (no network):
cache hits, rate-limit failover, RPC error passthrough and the
all-providers-down fallback.

Usage:
    python scripts/proxy_smoke.py

Exit codes:
    - 0: All checks passed
    - 1: One or more checks failed
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from balancer import ExhaustedError, LoadBalancer, ProviderRegistry, TransportError
from config.settings import settings_from_dict

SMOKE_CONFIG = {
    "proxy": {"max_retries": 3, "cache_ttl": 10},
    "providers": [
        {"name": "Primary", "url": "http://primary.invalid", "rate_limit": 15, "max_errors": 3, "priority": 1},
        {"name": "Backup", "url": "http://backup.invalid", "rate_limit": 20, "max_errors": 3, "priority": 3},
    ],
}


class ScriptedUpstream:
    """Per-provider canned answers; records who was called."""

    def __init__(self):
        self.calls = []
        self.throttled = set()
        self.down = set()

    async def __call__(self, provider, payload, timeout):
        self.calls.append(provider.name)
        if provider.name in self.down:
            raise TransportError("connection refused", provider=provider.name)
        if provider.name in self.throttled:
            return {"jsonrpc": "2.0", "id": payload.get("id"), "error": {"code": -32007, "message": "request limit reached"}}
        if payload.get("method") == "eth_call":
            return {"jsonrpc": "2.0", "id": payload.get("id"), "error": {"code": -32000, "message": "execution reverted"}}
        return {"jsonrpc": "2.0", "id": payload.get("id"), "result": hex(len(self.calls))}


async def _no_sleep(seconds):
    return None


async def run_checks():
    settings = settings_from_dict(SMOKE_CONFIG, env={})
    upstream = ScriptedUpstream()
    registry = ProviderRegistry.from_settings(settings.providers)
    balancer = LoadBalancer(registry, transport=upstream, max_retries=settings.max_retries,
                            cache_ttl=settings.cache_ttl, sleep=_no_sleep)

    def req(method, request_id, params=None):
        return {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or []}

    # 1. Cacheable read: second call served locally
    first = await balancer.handle(req("eth_blockNumber", 1))
    second = await balancer.handle(req("eth_blockNumber", 2))
    print(f"[proxy_smoke] eth_blockNumber -> {first['result']} / cached {second['result']}", file=sys.stderr)
    assert upstream.calls == ["Primary"], f"expected one upstream call, got {upstream.calls}"
    assert second["id"] == 2 and second["result"] == first["result"], "cached response mismatch"

    # 2. Upstream rate limit: retried on the backup
    upstream.throttled.add("Primary")
    upstream.calls.clear()
    resp = await balancer.handle(req("eth_chainId", 3))
    print(f"[proxy_smoke] rate-limited path -> {upstream.calls}", file=sys.stderr)
    assert "result" in resp, f"expected a result, got {resp}"
    assert upstream.calls[-1] == "Backup", f"expected failover to Backup, got {upstream.calls}"
    upstream.throttled.clear()

    # 3. Application error passes straight through
    upstream.calls.clear()
    resp = await balancer.handle(req("eth_call", 4, [{"to": "0x0"}, "latest"]))
    assert resp.get("error", {}).get("code") == -32000, f"expected RPC error passthrough, got {resp}"
    assert len(upstream.calls) == 1, "RPC error must not be retried"
    assert len(balancer.cache) == 1, "RPC error must not be cached"

    # 4. Everything down: request exhausts, then budgets recover by halving
    upstream.down.update({"Primary", "Backup"})
    try:
        await balancer.handle(req("eth_chainId", 5))
    except ExhaustedError as e:
        print(f"[proxy_smoke] exhausted as expected: {e}", file=sys.stderr)
    else:
        raise AssertionError("expected ExhaustedError with every provider down")

    for _ in range(4):
        try:
            await balancer.handle(req("eth_chainId", 6))
        except ExhaustedError:
            pass
    counts = {row["name"]: row["errorCount"] for row in balancer.health_status()["providers"]}
    print(f"[proxy_smoke] error counts after outage: {counts}", file=sys.stderr)
    assert all(c <= 3 for c in counts.values()), f"error budgets never recovered: {counts}"

    stats = balancer.stats.to_dict()
    print(f"[proxy_smoke] stats: total={stats['total']} ok={stats['successful']} failed={stats['failed']}", file=sys.stderr)
    assert stats["total"] == 9 and stats["failed"] == 5, f"unexpected stats {stats}"


def main():
    print("[proxy_smoke] Starting load balancer checks...", file=sys.stderr)
    try:
        asyncio.run(run_checks())
    except AssertionError as e:
        print(f"[proxy_smoke] ERROR: Assertion failed: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"[proxy_smoke] ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc(file=sys.stderr)
        sys.exit(1)

    print("\n[proxy_smoke] OK", file=sys.stderr)
    sys.exit(0)


if __name__ == "__main__":
    main()
