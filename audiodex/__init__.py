"""
audiodex - index a music folder into a normalized SQLite library.

The indexer walks a directory tree, reads embedded tags, gives every track a
deterministic human-readable identifier and stores artists, albums, genres and
tracks without duplicating rows across runs. A small read-only HTTP API serves
the resulting library.
"""

__version__ = "0.1.0"
__license__ = "GPL-2.0"

from audiodex.core.indexer import Indexer, RunReport
from audiodex.core.library_db import LibraryDb

__all__ = ["Indexer", "LibraryDb", "RunReport", "__version__"]
