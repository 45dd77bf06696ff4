"""
DB models (DTOs) and small normalization helpers.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Pure dataclasses + helper functions
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True, slots=True)
class ArtistRow:
    """Artist record as stored in SQLite."""

    id: int
    name: str


@dataclass(frozen=True, slots=True)
class AlbumRow:
    """Album record as stored in SQLite."""

    id: int
    title: str
    artist_id: int
    release_year: int | None


@dataclass(frozen=True, slots=True)
class GenreRow:
    """Genre record as stored in SQLite."""

    id: int
    name: str


@dataclass(frozen=True, slots=True)
class TrackRow:
    """
    Track record as stored in the `audio_files` table.

    Notes:
    - `identifier` is the human-readable primary key (column `human_hash_id`).
    - `file_path` is unique as well; one location maps to at most one row.
    """

    identifier: str
    file_path: str
    title: str
    duration_seconds: int | None
    lossless: bool
    track_number: int | None
    disc_number: int | None
    year: int | None
    artist_id: int
    album_id: int
    genre_id: int | None = None


@dataclass(frozen=True, slots=True)
class NewTrack:
    """
    Input record for `LibraryDb.insert_track`.

    The lookup ids must already be resolved through the get-or-insert methods.
    """

    identifier: str
    file_path: str
    title: str
    lossless: bool
    artist_id: int
    album_id: int
    genre_id: int | None = None
    track_number: int | None = None
    disc_number: int | None = None
    year: int | None = None
    duration_seconds: int | None = None


class InsertOutcome(Enum):
    INSERTED = "inserted"
    DUPLICATE = "duplicate"


def normalize_text(value: str | None) -> str | None:
    """
    Normalize optional text fields:
    - strip whitespace
    - coerce empty strings to None
    """
    if value is None:
        return None
    v = value.strip()
    return v if v else None


def normalize_int(value: int | None) -> int | None:
    """Normalize optional integer fields (coerce to int, keep None)."""
    if value is None:
        return None
    return int(value)
