"""server/app.py

aiohttp.web front end for the load balancer.

Routes:
    POST /         JSON-RPC proxy endpoint
    GET  /health   provider / stats / cache / session snapshot
    GET  /stats    health snapshot plus uptime and memory usage

Every response carries permissive CORS headers; OPTIONS short-circuits
with 200. Engine failures are rendered as JSON-RPC error envelopes, never
as raw exceptions.
"""

from __future__ import annotations

import logging
import resource
import time
from typing import Any, Dict

from aiohttp import web

from balancer import LoadBalancer

logger = logging.getLogger(__name__)

BALANCER_KEY = web.AppKey("balancer", LoadBalancer)
STARTED_AT_KEY = web.AppKey("started_at", float)

MAX_BODY_BYTES = 10 * 1024 * 1024

# JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
INTERNAL_ERROR = -32603

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
}


def error_envelope(code: int, message: str, request_id: Any = None) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "error": {"code": code, "message": message},
        "id": request_id,
    }


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        return web.Response(status=200, headers=CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


async def handle_rpc(request: web.Request) -> web.Response:
    balancer = request.app[BALANCER_KEY]

    try:
        payload = await request.json()
    except ValueError as e:
        return web.json_response(error_envelope(PARSE_ERROR, f"Parse error: {e}"), status=400)

    if not isinstance(payload, dict) or not isinstance(payload.get("method"), str):
        request_id = payload.get("id") if isinstance(payload, dict) else None
        return web.json_response(
            error_envelope(INVALID_REQUEST, "Invalid Request: expected a JSON-RPC object with a method", request_id),
            status=400,
        )

    try:
        result = await balancer.handle(payload, client_id=request.remote)
    except Exception as e:
        logger.error(f"[server] RPC request failed: {e}")
        return web.json_response(
            error_envelope(INTERNAL_ERROR, f"Internal error: {e}", payload.get("id")),
            status=500,
        )
    return web.json_response(result)


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response(request.app[BALANCER_KEY].health_status())


async def handle_stats(request: web.Request) -> web.Response:
    usage = resource.getrusage(resource.RUSAGE_SELF)
    body = {
        "uptime": round(time.monotonic() - request.app[STARTED_AT_KEY], 3),
        "memory": {"maxrss": usage.ru_maxrss},
    }
    body.update(request.app[BALANCER_KEY].health_status())
    return web.json_response(body)


async def _on_startup(app: web.Application) -> None:
    app[STARTED_AT_KEY] = time.monotonic()
    await app[BALANCER_KEY].start()


async def _on_cleanup(app: web.Application) -> None:
    logger.info("[server] Shutting down gracefully...")
    await app[BALANCER_KEY].stop()


def create_app(balancer: LoadBalancer, manage_lifecycle: bool = True) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        balancer: Engine serving the requests
        manage_lifecycle: Start/stop the balancer's workers with the app
    """
    app = web.Application(middlewares=[cors_middleware], client_max_size=MAX_BODY_BYTES)
    app[BALANCER_KEY] = balancer
    app[STARTED_AT_KEY] = time.monotonic()
    app.router.add_post("/", handle_rpc)
    app.router.add_get("/health", handle_health)
    app.router.add_get("/stats", handle_stats)
    if manage_lifecycle:
        app.on_startup.append(_on_startup)
        app.on_cleanup.append(_on_cleanup)
    return app
