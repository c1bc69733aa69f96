"""
balancer package

Provider selection, rate limiting, retry, caching and health tracking
for a JSON-RPC load-balancing proxy.
"""
from .cache import ResponseCache, cache_key
from .client import LoadBalancer
from .dispatcher import Dispatcher
from .errors import ExhaustedError, ProxyError, RateLimitedError, TransportError, UpstreamError
from .monitor import HealthTracker, ProbeResult
from .registry import Provider, ProviderRegistry
from .selector import Selector
from .sessions import SessionStore
from .stats import RequestStats
from .transport import HttpTransport

__all__ = [
    'LoadBalancer',
    'Dispatcher',
    'Selector',
    'Provider',
    'ProviderRegistry',
    'SessionStore',
    'ResponseCache',
    'cache_key',
    'HealthTracker',
    'ProbeResult',
    'RequestStats',
    'HttpTransport',
    'ProxyError',
    'UpstreamError',
    'TransportError',
    'RateLimitedError',
    'ExhaustedError',
]
