"""
audiodex web API - Entry Point

Run with: python -m audiodex.web --db music_library.sqlite
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from audiodex import __version__
from audiodex.config import ServerSettings, load_settings
from audiodex.core import StoreError
from audiodex.core.library_db import LibraryDb
from audiodex.web.server import WebServer

logger = logging.getLogger("audiodex.web")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> tuple[argparse.Namespace, ServerSettings]:
    """Parse command line arguments and merge them over the loaded settings."""
    parser = argparse.ArgumentParser(
        prog="audiodex-serve",
        description="Serve an indexed music library over HTTP (read-only).",
    )

    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the SQLite database file (default: $MUSIC_DB_PATH or music_library.sqlite)",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to (default: 0.0.0.0)",
    )

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: $PORT or 8080)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="TOML file overriding the default settings",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config).server
    except (OSError, ValueError) as e:
        parser.error(f"cannot load config {args.config}: {e}")

    overrides = {
        key: value
        for key, value in (("db_path", args.db), ("host", args.host), ("port", args.port))
        if value is not None
    }
    settings = replace(settings, **overrides)

    if not settings.db_path:
        parser.error("--db must not be empty")
    if not 0 < settings.port < 65536:
        parser.error(f"port out of range: {settings.port}")

    return args, settings


async def run_server(settings: ServerSettings) -> None:
    """Open the store read-only and serve it until interrupted."""
    async with LibraryDb(settings.db_path, read_only=True) as db:
        server = WebServer(db, settings)
        await server.serve()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the web API."""
    args, settings = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger.info("Serving library %s", settings.db_path)

    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except StoreError as e:
        logger.error("Failed to open database: %s", e)
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
