"""
audiodex indexer - Entry Point

Run with: python -m audiodex --music_folder /path/to/music
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from audiodex import __version__
from audiodex.config import Settings, load_settings
from audiodex.core import StoreError
from audiodex.core.indexer import Indexer, RunReport
from audiodex.core.library_db import LibraryDb

logger = logging.getLogger("audiodex")


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
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def positive_int(value: str) -> int:
    """argparse type for --workers."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="audiodex",
        description="Index a music folder into a SQLite library.",
    )

    parser.add_argument(
        "--music_folder",
        type=Path,
        required=True,
        help="Path to the music directory to index",
    )

    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the SQLite database file (default: music_library.sqlite)",
    )

    parser.add_argument(
        "--workers",
        type=positive_int,
        default=None,
        help="Number of concurrent workers for indexing (default: 4)",
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

    return parser


def parse_args(argv: list[str] | None = None) -> tuple[argparse.Namespace, Settings]:
    """
    Parse and validate command line arguments.

    Any problem ends the process here (argparse exits with status 2) before
    any work starts.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except (OSError, ValueError) as e:
        parser.error(f"cannot load config {args.config}: {e}")

    if args.db is None:
        args.db = settings.indexer.db_path
    if not args.db:
        parser.error("--db must not be empty")
    if args.workers is None:
        args.workers = settings.indexer.workers

    folder: Path = args.music_folder
    if not folder.exists():
        parser.error(f"music folder does not exist: {folder}")
    if not folder.is_dir():
        parser.error(f"music folder path is not a directory: {folder}")

    return args, settings


async def run_indexer(
    music_folder: Path, db_path: str, workers: int, settings: Settings
) -> RunReport:
    """Open the store, run one indexing pass and close the store."""
    async with LibraryDb(db_path) as db:
        indexer = Indexer(db=db, workers=workers, settings=settings.indexer)
        return await indexer.run(music_folder)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args, settings = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger.info("Database path: %s", args.db)
    logger.info("Music folder: %s", args.music_folder)
    logger.info("Number of workers: %d", args.workers)

    try:
        report = asyncio.run(run_indexer(args.music_folder, args.db, args.workers, settings))
    except KeyboardInterrupt:
        logger.info("Indexing interrupted by user")
        return 130
    except StoreError as e:
        logger.error("Failed to initialize database: %s", e)
        return 1
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    if report.fatal_error is not None:
        logger.error("Indexing failed: %s", report.fatal_error)
        return 1

    logger.info(
        "Indexing complete: %d files queued, %d committed, %d already indexed, %d failed",
        report.queued,
        report.committed,
        report.duplicates,
        report.failed,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
