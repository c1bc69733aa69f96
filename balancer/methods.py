"""balancer/methods.py

Static JSON-RPC method sets that drive caching and sync-aware selection.
"""

# Read-only calls whose answer does not depend on who serves them.
CACHEABLE_METHODS = frozenset({
    "eth_blockNumber",
    "eth_getBalance",
    "eth_getTransactionCount",
    "eth_getCode",
    "eth_call",
})

# Calls that return wrong/empty answers from a provider behind the chain tip.
SYNC_CRITICAL_METHODS = frozenset({
    "eth_getBlockByNumber",
    "eth_getTransactionByHash",
    "eth_getTransactionReceipt",
    "eth_getLogs",
})

# Probe used by the health tracker
BLOCK_HEIGHT_METHOD = "eth_blockNumber"

# Upstream JSON-RPC error codes that mean "slow down"
RATE_LIMIT_ERROR_CODES = frozenset({-32007})


def is_cacheable(method: str) -> bool:
    return method in CACHEABLE_METHODS


def is_sync_critical(method: str) -> bool:
    return method in SYNC_CRITICAL_METHODS
