"""
Web Routes Package.

This package contains FastAPI route modules:
- api: library endpoints (/track, /tracks/all, /artist, /album, /search)
- streaming: raw track bytes (/stream)
- artwork: cover images (/cover)
"""

from audiodex.web.routes.api import register_api_routes
from audiodex.web.routes.artwork import register_artwork_routes
from audiodex.web.routes.streaming import register_streaming_routes

__all__ = [
    "register_api_routes",
    "register_artwork_routes",
    "register_streaming_routes",
]
