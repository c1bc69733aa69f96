from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest

from balancer import LoadBalancer, Provider, ProviderRegistry


# Mirrors config/providers.yaml
DEFAULT_POOL = [
    ("QuickNode", 15, 5, 1),
    ("Alchemy", 15, 5, 1),
    ("Ankr", 20, 3, 3),
    ("DRPC", 15, 3, 5),
    ("Public_Panda", 15, 3, 5),
    ("Public_Thirdweb", 15, 3, 5),
]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that advances the fake clock instead of waiting."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.clock.advance(seconds)


Outcome = Union[Dict[str, Any], Exception, Callable[[Dict[str, Any]], Dict[str, Any]]]


class FakeTransport:
    """
    Scripted provider responses.

    `script` maps provider name -> list of outcomes consumed in order (the
    last one repeats). An outcome is a response dict, an exception to raise,
    or a callable building the response from the payload. Providers not in
    the script answer with `default`.
    """

    def __init__(self, clock: Optional[FakeClock] = None, script: Optional[Dict[str, List[Outcome]]] = None,
                 default: Optional[Outcome] = None):
        self.clock = clock
        self.script = script or {}
        self.default = default if default is not None else (lambda payload: {
            "jsonrpc": "2.0", "id": payload.get("id"), "result": "0x1",
        })
        self.calls: List[Tuple[str, Dict[str, Any], Optional[float]]] = []

    def names(self) -> List[str]:
        return [name for name, _, _ in self.calls]

    async def __call__(self, provider: Provider, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        self.calls.append((provider.name, payload, self.clock() if self.clock else None))
        outcomes = self.script.get(provider.name)
        if outcomes:
            outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        else:
            outcome = self.default
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(payload)
        return dict(outcome)


def make_providers(pool=DEFAULT_POOL) -> List[Provider]:
    return [
        Provider(index=i, name=name, url=f"https://{name.lower()}.example/rpc",
                 rate_limit=rate, max_errors=max_errors, priority=priority)
        for i, (name, rate, max_errors, priority) in enumerate(pool)
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep(clock) -> RecordingSleep:
    return RecordingSleep(clock)


@pytest.fixture
def registry(clock) -> ProviderRegistry:
    return ProviderRegistry(make_providers(), clock=clock)


@pytest.fixture
def solo_registry(clock) -> ProviderRegistry:
    return ProviderRegistry(make_providers([("Solo", 15, 10, 1)]), clock=clock)


@pytest.fixture
def transport(clock) -> FakeTransport:
    return FakeTransport(clock)


@pytest.fixture
def make_balancer(fake_sleep):
    def _make(registry: ProviderRegistry, transport, **kwargs) -> LoadBalancer:
        kwargs.setdefault("sleep", fake_sleep)
        return LoadBalancer(registry, transport=transport, **kwargs)
    return _make


def rpc(method: str, params=None, request_id: Any = 1) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "method": method, "params": params if params is not None else [], "id": request_id}
