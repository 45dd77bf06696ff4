"""
Human-readable track identifiers.

A track's identifier is the SHA-256 digest of its title, artist, album and file
path, rendered as a handful of dictionary words ("sodium-magnesium-nineteen-
hydrogen"). The same inputs always give the same identifier, which is what lets
the store recognize an already-indexed track without a sequence counter.

Because the path is hashed too, identical tags at two locations give two
identifiers, while a file whose tags change between runs gets a new identifier
at an unchanged path. The store's path uniqueness check catches the latter and
the file is skipped as already indexed, not updated.
"""

from __future__ import annotations

import hashlib

import humanhash

from audiodex.core import IdentifierError

DEFAULT_WORDS = 4
# One word per digest byte at most; humanhash returns the bytes unchanged beyond that.
MAX_WORDS = hashlib.sha256().digest_size


def identifier_source(title: str, artist: str, album: str, file_path: str) -> str:
    return f"{title}-{artist}-{album}-{file_path}"


def generate_identifier(
    title: str,
    artist: str,
    album: str,
    file_path: str,
    *,
    words: int = DEFAULT_WORDS,
) -> str:
    """
    Derive the identifier for a track.

    Raises:
        IdentifierError: if the digest cannot be rendered with `words` words.
    """
    if not 0 < words <= MAX_WORDS:
        raise IdentifierError(f"word count must be between 1 and {MAX_WORDS}, got {words}")
    source = identifier_source(title, artist, album, file_path)
    digest = hashlib.sha256(source.encode("utf-8", errors="surrogateescape")).hexdigest()
    try:
        return humanhash.humanize(digest, words=words)
    except (ValueError, IndexError) as e:
        raise IdentifierError(f"cannot render identifier for {file_path}: {e}") from e
