"""
balancer/selector.py

Selector - picks the provider for one attempt.
"""
import logging
from typing import List, Optional

from .registry import SYNC_TOLERANCE_BLOCKS, Provider, ProviderRegistry
from .sessions import SessionStore

logger = logging.getLogger(__name__)


class Selector:
    """
    Provider selection for a single dispatch attempt.

    Order of preference:
    1. The client's sticky provider, if its session is live and the
       provider is under its error budget
    2. Providers under budget, by ascending priority, optionally narrowed
       to those at the chain tip (preferSync)
    3. Among those, the first one whose rate-limit interval has already
       elapsed, else the one with the shortest remaining wait

    When every provider is over budget, error counts are halved and the
    first configured provider is returned (degraded fallback).
    """

    def __init__(self, registry: ProviderRegistry, sessions: Optional[SessionStore] = None):
        self._registry = registry
        self._sessions = sessions

    def select(self, client_id: Optional[str] = None, prefer_sync: bool = False) -> Provider:
        """
        Choose a provider.

        Args:
            client_id: Caller identity for sticky sessions (e.g. source IP)
            prefer_sync: Restrict to providers within one block of the tip

        Returns:
            The chosen Provider. Never None.
        """
        if client_id is not None and self._sessions is not None:
            index = self._sessions.lookup(client_id)
            if index is not None:
                sticky = self._registry[index]
                if sticky.available:
                    return sticky

        candidates = self._registry.available()

        if prefer_sync and len(candidates) > 1:
            candidates = self._in_sync(candidates)

        if not candidates:
            self._registry.reset_error_budgets()
            fallback = self._registry[0]
            logger.warning(f"[selector] Degraded mode: forcing {fallback.name}")
            chosen = fallback
        else:
            chosen = self._least_waiting(candidates)

        if client_id is not None and self._sessions is not None:
            self._sessions.bind(client_id, chosen.index)
        return chosen

    def _in_sync(self, candidates: List[Provider]) -> List[Provider]:
        best = self._registry.best_block_height(candidates)
        if best is None:
            return candidates
        # Unknown height is provisionally acceptable
        return [
            p for p in candidates
            if p.block_height is None or p.block_height >= best - SYNC_TOLERANCE_BLOCKS
        ]

    def _least_waiting(self, candidates: List[Provider]) -> Provider:
        now = self._registry.clock()
        waits = [(self._registry.wait_time(p, now), p) for p in candidates]
        for wait, provider in waits:
            if wait <= 0:
                return provider
        best_wait, best = waits[0]
        for wait, provider in waits[1:]:
            if wait < best_wait:
                best_wait, best = wait, provider
        return best
