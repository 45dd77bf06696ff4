"""
Web Server Module for audiodex.

This module provides the WebServer class that creates the FastAPI
application over a read-only LibraryDb and registers all routes:
- Library API (tracks, artists, albums, search)
- Streaming endpoint for raw track bytes
- Cover art endpoint
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from audiodex import __version__
from audiodex.config import ServerSettings
from audiodex.web.routes.api import register_api_routes
from audiodex.web.routes.artwork import register_artwork_routes
from audiodex.web.routes.streaming import register_streaming_routes

if TYPE_CHECKING:
    from audiodex.core.library_db import LibraryDb

logger = logging.getLogger(__name__)


class WebServer:
    """
    FastAPI-based web server for audiodex.

    The server never writes: it is meant to be given a LibraryDb opened with
    read_only=True while an indexing run may be writing the same file.
    """

    def __init__(
        self,
        library_db: LibraryDb,
        settings: ServerSettings | None = None,
    ) -> None:
        """
        Initialize the WebServer.

        Args:
            library_db: Store to serve from
            settings: Host, port and cover candidates (defaults if None)
        """
        self.library_db = library_db
        self.settings = settings or ServerSettings()

        # Create FastAPI app
        self.app = FastAPI(
            title="audiodex",
            description="Read-only API over an indexed music library",
            version=__version__,
        )

        # Add CORS middleware
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        # Server state
        self._server: uvicorn.Server | None = None
        self._host = self.settings.host
        self._port = self.settings.port

        # Register routes
        self._register_routes()

    def _register_routes(self) -> None:
        """Register all routes with the FastAPI app."""

        @self.app.get("/")
        async def index() -> dict[str, str]:
            """Welcome message."""
            return {"message": "Welcome to the audiodex music library API"}

        # Health check
        @self.app.get("/health")
        async def health_check() -> dict[str, str]:
            """Health check endpoint."""
            return {"status": "ok"}

        register_api_routes(self.app, self.library_db)
        register_streaming_routes(self.app, self.library_db)
        register_artwork_routes(
            self.app,
            self.library_db,
            cover_candidates=self.settings.cover_candidates,
        )

    def _make_server(self, host: str, port: int) -> uvicorn.Server:
        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        return uvicorn.Server(config)

    async def serve(self, host: str | None = None, port: int | None = None) -> None:
        """Run the server in the foreground until it is told to exit."""
        self._host = host or self._host
        self._port = port or self._port
        self._server = self._make_server(self._host, self._port)
        logger.info("Web server listening on http://%s:%d", self._host, self._port)
        try:
            await self._server.serve()
        finally:
            self._server = None
            logger.info("Web server stopped")

    @property
    def port(self) -> int:
        """Get the server port."""
        return self._port

    @property
    def host(self) -> str:
        """Get the server host."""
        return self._host
