"""
server package

HTTP front end (aiohttp.web) for the balancer engine.
"""
from .app import create_app

__all__ = ['create_app']
