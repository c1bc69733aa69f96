import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from balancer import HttpTransport, Provider, RateLimitedError, TransportError


pytestmark = pytest.mark.integration


async def _ok(request):
    payload = await request.json()
    return web.json_response({"jsonrpc": "2.0", "id": payload["id"], "result": "0x2a"})


async def _throttled(request):
    return web.json_response({"error": "too many requests"}, status=429)


async def _broken(request):
    return web.Response(status=502, text="bad gateway")


async def _html(request):
    return web.Response(text="<html>maintenance</html>", content_type="text/html")


async def _list(request):
    return web.json_response([{"jsonrpc": "2.0", "id": 1, "result": "0x1"}])


async def _slow(request):
    await asyncio.sleep(1)
    return web.json_response({"result": "0x1"})


def _upstream_app():
    app = web.Application()
    app.router.add_post("/ok", _ok)
    app.router.add_post("/throttled", _throttled)
    app.router.add_post("/broken", _broken)
    app.router.add_post("/html", _html)
    app.router.add_post("/list", _list)
    app.router.add_post("/slow", _slow)
    return app


def _call(path, timeout=5.0):
    async def run():
        server = TestServer(_upstream_app())
        await server.start_server()
        try:
            provider = Provider(index=0, name="Local", url=str(server.make_url(path)), rate_limit=10, max_errors=3)
            async with HttpTransport() as transport:
                return await transport(provider, {"jsonrpc": "2.0", "id": 9, "method": "eth_blockNumber", "params": []}, timeout)
        finally:
            await server.close()

    return asyncio.run(run())


def test_posts_json_rpc_and_decodes_body():
    assert _call("/ok") == {"jsonrpc": "2.0", "id": 9, "result": "0x2a"}


def test_http_429_is_rate_limited():
    with pytest.raises(RateLimitedError) as excinfo:
        _call("/throttled")
    assert excinfo.value.status == 429
    assert excinfo.value.rate_limited


def test_non_2xx_is_transport_error():
    with pytest.raises(TransportError, match="HTTP 502") as excinfo:
        _call("/broken")
    assert not excinfo.value.rate_limited


def test_non_json_body_is_transport_error():
    with pytest.raises(TransportError, match="Non-JSON"):
        _call("/html")


def test_non_object_body_is_transport_error():
    with pytest.raises(TransportError, match="not a JSON-RPC object"):
        _call("/list")


def test_timeout_is_transport_error():
    with pytest.raises(TransportError, match="Timeout"):
        _call("/slow", timeout=0.05)


def test_unreachable_host_is_transport_error():
    async def run():
        provider = Provider(index=0, name="Down", url="http://127.0.0.1:1/", rate_limit=10, max_errors=3)
        async with HttpTransport() as transport:
            await transport(provider, {"jsonrpc": "2.0", "id": 1, "method": "eth_chainId"}, 2.0)

    with pytest.raises(TransportError):
        asyncio.run(run())


def test_requires_open_session():
    provider = Provider(index=0, name="Local", url="http://127.0.0.1:1/", rate_limit=10, max_errors=3)
    with pytest.raises(RuntimeError):
        asyncio.run(HttpTransport()(provider, {}, 1.0))
