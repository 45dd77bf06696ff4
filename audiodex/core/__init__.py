"""
Core domain package.

This package contains the ingestion pipeline and the store it writes to. It is
independent of any UI layer (web, CLI); the entry points only wire it up.

We intentionally keep exports minimal; consumers should usually import from the
specific module they need (e.g. `audiodex.core.indexer`).
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

__all__: list[str] = [
    "CoreError",
    "ExtractionError",
    "ExtractionErrorKind",
    "IdentifierError",
    "StoreError",
    "WalkError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class WalkError(CoreError):
    """Raised when the music folder cannot be traversed. Fatal for a run."""


class ExtractionErrorKind(Enum):
    UNREADABLE = "unreadable"
    UNPARSEABLE = "unparseable"


class ExtractionError(CoreError):
    """Raised by a metadata extractor when a file yields no usable tags."""

    def __init__(self, kind: ExtractionErrorKind, path: Path, message: str) -> None:
        super().__init__(f"{kind.value}: {message}")
        self.kind = kind
        self.path = path


class IdentifierError(CoreError):
    """Raised when a track identifier cannot be derived."""


class StoreError(CoreError):
    """Raised when the library store rejects an operation."""
