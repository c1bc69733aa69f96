#!/usr/bin/env python3
"""server/main.py

Entry point: load settings, build the balancer, serve HTTP.

Usage:
    python -m server.main --config config/providers.yaml --port 3001
    rpc-proxy --log-level DEBUG
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from aiohttp import web

from balancer import LoadBalancer
from config.settings import ConfigError, load_settings
from server.app import create_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="JSON-RPC load-balancing proxy")
    ap.add_argument("--config", default=None, help="Path to providers YAML (default: $RPC_PROXY_CONFIG or bundled providers.yaml)")
    ap.add_argument("--host", default=None, help="Listen address (overrides config)")
    ap.add_argument("--port", type=int, default=None, help="Listen port (overrides config and $PORT)")
    ap.add_argument("--log-level", default=None, help="Logging level (overrides config)")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    level = (args.log_level or settings.log_level).upper()
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s %(message)s')

    host = args.host or settings.host
    port = args.port or settings.port

    balancer = LoadBalancer.from_settings(settings)
    app = create_app(balancer)

    logger.info(f"[server] RPC load balancer on {host}:{port} ({len(settings.providers)} providers, config {settings.source})")
    logger.info(f"[server] Health check: http://localhost:{port}/health")
    logger.info(f"[server] Stats: http://localhost:{port}/stats")
    web.run_app(app, host=host, port=port, print=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
