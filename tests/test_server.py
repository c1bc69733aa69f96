import asyncio

import pytest
from aiohttp.test_utils import TestClient, TestServer

from balancer import TransportError
from conftest import FakeTransport, rpc
from server.app import create_app

pytestmark = pytest.mark.integration


def _with_client(balancer, scenario):
    async def run():
        client = TestClient(TestServer(create_app(balancer, manage_lifecycle=False)))
        await client.start_server()
        try:
            return await scenario(client)
        finally:
            await client.close()

    return asyncio.run(run())


def test_proxies_request_with_cors_headers(registry, transport, make_balancer):
    balancer = make_balancer(registry, transport)

    async def scenario(client):
        resp = await client.post("/", json=rpc("eth_chainId", request_id="abc"))
        return resp.status, resp.headers.get("Access-Control-Allow-Origin"), await resp.json()

    status, origin, body = _with_client(balancer, scenario)

    assert status == 200
    assert origin == "*"
    assert body == {"jsonrpc": "2.0", "id": "abc", "result": "0x1"}
    assert transport.names() == ["QuickNode"]


def test_exhausted_request_renders_internal_error(solo_registry, clock, make_balancer):
    transport = FakeTransport(clock, script={"Solo": [TransportError("connection refused", provider="Solo")]})
    balancer = make_balancer(solo_registry, transport, max_retries=2)

    async def scenario(client):
        resp = await client.post("/", json=rpc("eth_chainId", request_id=77))
        return resp.status, await resp.json()

    status, body = _with_client(balancer, scenario)

    assert status == 500
    assert body["id"] == 77
    assert body["error"]["code"] == -32603
    assert body["error"]["message"].startswith("Internal error:")
    assert "connection refused" in body["error"]["message"]


def test_malformed_json_is_parse_error(registry, transport, make_balancer):
    balancer = make_balancer(registry, transport)

    async def scenario(client):
        resp = await client.post("/", data="{not json", headers={"Content-Type": "application/json"})
        return resp.status, await resp.json()

    status, body = _with_client(balancer, scenario)

    assert status == 400
    assert body["error"]["code"] == -32700
    assert body["id"] is None
    assert transport.calls == []


@pytest.mark.parametrize("payload", [
    [rpc("eth_chainId")],
    {"jsonrpc": "2.0", "id": 3},
    {"jsonrpc": "2.0", "id": 3, "method": 12},
])
def test_invalid_request_shapes(registry, transport, make_balancer, payload):
    balancer = make_balancer(registry, transport)

    async def scenario(client):
        resp = await client.post("/", json=payload)
        return resp.status, await resp.json()

    status, body = _with_client(balancer, scenario)

    assert status == 400
    assert body["error"]["code"] == -32600
    assert transport.calls == []


def test_options_preflight(registry, transport, make_balancer):
    balancer = make_balancer(registry, transport)

    async def scenario(client):
        resp = await client.options("/")
        return resp.status, dict(resp.headers)

    status, headers = _with_client(balancer, scenario)

    assert status == 200
    assert headers["Access-Control-Allow-Methods"] == "POST, GET, OPTIONS"
    assert headers["Access-Control-Allow-Headers"] == "Content-Type"


def test_health_snapshot(registry, transport, make_balancer):
    balancer = make_balancer(registry, transport)
    registry[0].error_count = registry[0].max_errors

    async def scenario(client):
        await client.post("/", json=rpc("eth_blockNumber"))
        resp = await client.get("/health")
        return resp.status, await resp.json()

    status, body = _with_client(balancer, scenario)

    assert status == 200
    assert [row["name"] for row in body["providers"]][:2] == ["QuickNode", "Alchemy"]
    assert body["providers"][0]["available"] is False
    assert body["stats"]["total"] == 1
    assert body["stats"]["byProvider"]["Alchemy"]["successes"] == 1
    assert body["cache"]["size"] == 1
    assert body["sessions"]["size"] == 1
    assert "timestamp" in body


def test_stats_adds_uptime_and_memory(registry, transport, make_balancer):
    balancer = make_balancer(registry, transport)

    async def scenario(client):
        resp = await client.get("/stats")
        return await resp.json()

    body = _with_client(balancer, scenario)

    assert body["uptime"] >= 0
    assert body["memory"]["maxrss"] > 0
    assert len(body["providers"]) == len(registry)


@pytest.mark.parametrize("method,path,status", [
    ("GET", "/missing", 404),
    ("GET", "/", 405),
])
def test_framework_errors_carry_cors_headers(registry, transport, make_balancer, method, path, status):
    balancer = make_balancer(registry, transport)

    async def scenario(client):
        resp = await client.request(method, path)
        return resp.status, resp.headers.get("Access-Control-Allow-Origin")

    assert _with_client(balancer, scenario) == (status, "*")
