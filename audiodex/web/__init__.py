"""
audiodex Web Layer.

A read-only HTTP API over the indexed library, for browsers and players.

Components:
- WebServer: FastAPI application with all routes
"""

from audiodex.web.server import WebServer

__all__ = [
    "WebServer",
]
