"""
balancer/sessions.py

SessionStore - sticky client -> provider affinity with idle expiry.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class ClientSession:
    """Provider binding for one client identifier."""
    provider_index: int
    last_used: float


class SessionStore:
    """
    Keeps a client's successive calls on the same provider.

    Features:
    - Idle timeout (default 5 minutes), refreshed on every reuse
    - Lazy expiry on lookup plus periodic cleanup_expired() sweep
    - Bound indices always valid within the registry
    """

    DEFAULT_TIMEOUT_SEC = 300

    def __init__(
        self,
        registry,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize SessionStore.

        Args:
            registry: ProviderRegistry the stored indices point into
            timeout_sec: Idle time after which a session expires
            clock: Monotonic time source (defaults to the registry's clock)
        """
        self._registry = registry
        self._timeout_sec = timeout_sec
        self._clock = clock or getattr(registry, "clock", time.monotonic)
        self._sessions: Dict[str, ClientSession] = {}
        self._lock = threading.RLock()

    def _is_live(self, session: ClientSession, now: float) -> bool:
        return now - session.last_used < self._timeout_sec

    def lookup(self, client_id: str) -> Optional[int]:
        """Provider index of a live session (refreshing it), or None."""
        now = self._clock()
        with self._lock:
            session = self._sessions.get(client_id)
            if session is None:
                return None
            if not self._is_live(session, now):
                del self._sessions[client_id]
                return None
            session.last_used = now
            return session.provider_index

    def get_or_create(self, client_id: str) -> int:
        """
        Return the provider index bound to `client_id`.

        A live session is refreshed and reused. Otherwise the client is bound
        to the highest-priority provider under its error budget, or to the
        first configured provider when none is.
        """
        index = self.lookup(client_id)
        if index is not None:
            return index

        candidates = self._registry.available()
        index = candidates[0].index if candidates else 0
        self.bind(client_id, index)
        return index

    def bind(self, client_id: str, provider_index: int) -> None:
        """Point a client's session at `provider_index`."""
        if not self._registry.is_valid_index(provider_index):
            raise IndexError(f"No provider at index {provider_index}")
        with self._lock:
            self._sessions[client_id] = ClientSession(provider_index=provider_index, last_used=self._clock())
        logger.debug(f"[sessions] {client_id} -> {self._registry[provider_index].name}")

    def cleanup_expired(self) -> int:
        """
        Remove all idle sessions.

        Returns:
            Number of sessions removed
        """
        now = self._clock()
        with self._lock:
            expired = [cid for cid, s in self._sessions.items() if not self._is_live(s, now)]
            for cid in expired:
                del self._sessions[cid]
        if expired:
            logger.debug(f"[sessions] Evicted {len(expired)} idle sessions")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
