"""
Cover art discovery.

Cover art is not read from inside audio files; we look for a well-known image
file next to the track ("cover.jpg", "folder.png", ...) and hand back its bytes
with an ETag so HTTP clients can cache it.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_COVER_CANDIDATES: tuple[str, ...] = ("cover.jpg", "cover.png", "folder.jpg", "folder.png")


@dataclass(frozen=True, slots=True)
class CoverArt:
    path: Path
    data: bytes
    mime_type: str

    @property
    def etag(self) -> str:
        """Short content hash suitable for an HTTP ETag header."""
        return hashlib.sha256(self.data).hexdigest()[:16]


def _guess_mime(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or "application/octet-stream"


def find_cover_art(
    track_path: str | Path,
    candidates: tuple[str, ...] = DEFAULT_COVER_CANDIDATES,
) -> CoverArt | None:
    """
    Return the first readable candidate image in the track's directory.

    Candidates are tried in order; unreadable ones are skipped.
    Blocking: call it through `asyncio.to_thread` from async code.
    """
    directory = Path(track_path).parent
    for name in candidates:
        candidate = directory / name
        try:
            data = candidate.read_bytes()
        except OSError:
            continue
        logger.debug("Cover art for %s: %s", track_path, candidate)
        return CoverArt(path=candidate, data=data, mime_type=_guess_mime(candidate))
    return None
