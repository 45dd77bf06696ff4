"""
Library API Routes for audiodex.

Read-only endpoints over the indexed library:
- /track/{id}: one track by identifier
- /tracks/all: every track
- /artist/{artist_id}, /album/{album_id}: tracks by lookup id
- /search/track/{query}, /search/album/{query}: substring title search
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException

from audiodex.core.db.models import AlbumRow, TrackRow

if TYPE_CHECKING:
    from audiodex.core.library_db import LibraryDb

logger = logging.getLogger(__name__)

router = APIRouter(tags=["library"])

# Reference set during route registration
_library_db: LibraryDb | None = None


def register_api_routes(app, library_db: LibraryDb) -> None:
    """
    Register library routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        library_db: LibraryDb to read from (opened read-only by the server)
    """
    global _library_db
    _library_db = library_db
    app.include_router(router)


def _require_db() -> LibraryDb:
    if _library_db is None or not _library_db.is_open:
        raise HTTPException(status_code=503, detail="Library not initialized")
    return _library_db


def track_to_dict(track: TrackRow) -> dict[str, Any]:
    return {
        "id": track.identifier,
        "title": track.title,
        "artist_id": track.artist_id,
        "album_id": track.album_id,
        "file_path": track.file_path,
    }


def album_to_dict(album: AlbumRow) -> dict[str, Any]:
    return {
        "id": album.id,
        "title": album.title,
        "artist_id": album.artist_id,
        "release_year": album.release_year,
    }


@router.get("/track/{identifier}")
async def get_track(identifier: str) -> dict[str, Any]:
    """Get track metadata by identifier."""
    db = _require_db()
    track = await db.get_track(identifier)
    if track is None:
        raise HTTPException(status_code=404, detail="track not found")
    return track_to_dict(track)


@router.get("/tracks/all")
async def list_all_tracks() -> list[dict[str, Any]]:
    """List every track in the library."""
    db = _require_db()
    return [track_to_dict(t) for t in await db.list_tracks()]


@router.get("/artist/{artist_id}")
async def list_artist_tracks(artist_id: int) -> list[dict[str, Any]]:
    """List all tracks of an artist."""
    db = _require_db()
    tracks = await db.list_tracks_by_artist(artist_id)
    if not tracks:
        raise HTTPException(status_code=404, detail="no tracks found")
    return [track_to_dict(t) for t in tracks]


@router.get("/album/{album_id}")
async def list_album_tracks(album_id: int) -> list[dict[str, Any]]:
    """List all tracks of an album."""
    db = _require_db()
    tracks = await db.list_tracks_by_album(album_id)
    if not tracks:
        raise HTTPException(status_code=404, detail="no tracks found for this album")
    return [track_to_dict(t) for t in tracks]


@router.get("/search/track/{query}")
async def search_tracks(query: str) -> list[dict[str, Any]]:
    """Tracks whose title contains the query."""
    db = _require_db()
    if not query.strip():
        raise HTTPException(status_code=400, detail="query cannot be empty")
    tracks = await db.search_tracks(query.strip())
    if not tracks:
        raise HTTPException(status_code=404, detail="no tracks found")
    return [track_to_dict(t) for t in tracks]


@router.get("/search/album/{query}")
async def search_albums(query: str) -> list[dict[str, Any]]:
    """Albums whose title contains the query."""
    db = _require_db()
    if not query.strip():
        raise HTTPException(status_code=400, detail="query cannot be empty")
    albums = await db.search_albums(query.strip())
    if not albums:
        raise HTTPException(status_code=404, detail="no albums found")
    return [album_to_dict(a) for a in albums]
