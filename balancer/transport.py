"""
balancer/transport.py

HttpTransport - outbound JSON-RPC POST to a provider over aiohttp.

Any callable with the same signature can stand in for it
(see LoadBalancer's `transport` argument):

    async def transport(provider, payload: dict, timeout: float) -> dict
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from .errors import RateLimitedError, TransportError

logger = logging.getLogger(__name__)

HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class HttpTransport:
    """
    Shared aiohttp session for provider calls.

    Usage:
        async with HttpTransport() as transport:
            body = await transport(provider, payload, timeout=30)
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "HttpTransport":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(headers=HEADERS)
            self._owns_session = True

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def __call__(self, provider, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        """
        POST `payload` to the provider and return the decoded JSON-RPC body.

        Raises:
            RateLimitedError: HTTP 429
            TransportError: connection failure, timeout, other non-2xx, non-JSON body
        """
        if self._session is None:
            raise RuntimeError("HttpTransport session not initialized. Use open() or async context manager.")

        try:
            async with self._session.post(
                provider.url,
                json=payload,
                headers=HEADERS,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                if response.status == 429:
                    raise RateLimitedError(
                        f"HTTP 429: rate limit reached on {provider.name}",
                        provider=provider.name,
                        status=429,
                    )
                if response.status < 200 or response.status >= 300:
                    raise TransportError(
                        f"HTTP {response.status}: {response.reason}",
                        provider=provider.name,
                        status=response.status,
                    )
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise TransportError(f"Non-JSON response: {e}", provider=provider.name, status=response.status)
        except asyncio.TimeoutError:
            raise TransportError(f"Timeout after {timeout}s", provider=provider.name)
        except aiohttp.ClientError as e:
            raise TransportError(f"{type(e).__name__}: {e}", provider=provider.name)

        if not isinstance(body, dict):
            raise TransportError("Response is not a JSON-RPC object", provider=provider.name)
        return body
