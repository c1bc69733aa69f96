"""balancer/errors.py

Exception taxonomy for the load balancer.

UpstreamError and its subclasses describe a single failed attempt and are
always handled inside the dispatcher's retry loop. Only ExhaustedError
escapes to callers.
"""
from typing import Optional


class ProxyError(Exception):
    """Base class for all load balancer errors."""


class UpstreamError(ProxyError):
    """A retryable failure talking to one provider."""

    rate_limited = False

    def __init__(self, message: str, provider: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status


class TransportError(UpstreamError):
    """Connection failure, timeout, non-2xx status or unreadable body."""


class RateLimitedError(UpstreamError):
    """Provider refused the call because of its own rate limit."""

    rate_limited = True


class ExhaustedError(ProxyError):
    """All attempts for a request failed."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts
