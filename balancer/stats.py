"""
balancer/stats.py

RequestStats - process-wide request counters.
"""
import threading
from typing import Any, Dict, Iterable


class RequestStats:
    """
    Global {total, successful, failed} counters plus per-provider
    {requests, successes, failures}. Never reset while the process runs.
    """

    def __init__(self, provider_names: Iterable[str] = ()):
        self._lock = threading.Lock()
        self.total = 0
        self.successful = 0
        self.failed = 0
        self._by_provider: Dict[str, Dict[str, int]] = {}
        for name in provider_names:
            self._provider(name)

    def _provider(self, name: str) -> Dict[str, int]:
        counters = self._by_provider.get(name)
        if counters is None:
            counters = {"requests": 0, "successes": 0, "failures": 0}
            self._by_provider[name] = counters
        return counters

    def record_request(self) -> None:
        with self._lock:
            self.total += 1

    def record_attempt(self, provider: str) -> None:
        with self._lock:
            self._provider(provider)["requests"] += 1

    def record_success(self, provider: str) -> None:
        with self._lock:
            self.successful += 1
            self._provider(provider)["successes"] += 1

    def record_attempt_failure(self, provider: str) -> None:
        with self._lock:
            self._provider(provider)["failures"] += 1

    def record_exhausted(self) -> None:
        with self._lock:
            self.failed += 1

    def for_provider(self, name: str) -> Dict[str, int]:
        with self._lock:
            return dict(self._provider(name))

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total": self.total,
                "successful": self.successful,
                "failed": self.failed,
                "byProvider": {name: dict(c) for name, c in self._by_provider.items()},
            }
