"""
Artwork Routes for audiodex.

Provides /cover/{id}: the cover image found next to a track's file, inlined as
a base64 data URL.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from audiodex.core.artwork import DEFAULT_COVER_CANDIDATES, find_cover_art

if TYPE_CHECKING:
    from audiodex.core.library_db import LibraryDb

logger = logging.getLogger(__name__)

router = APIRouter(tags=["artwork"])

# References set during route registration
_library_db: LibraryDb | None = None
_cover_candidates: tuple[str, ...] = DEFAULT_COVER_CANDIDATES


def register_artwork_routes(
    app,
    library_db: LibraryDb,
    cover_candidates: tuple[str, ...] = DEFAULT_COVER_CANDIDATES,
) -> None:
    """
    Register artwork routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        library_db: LibraryDb for track lookups
        cover_candidates: File names tried, in order, in the track's directory
    """
    global _library_db, _cover_candidates
    _library_db = library_db
    _cover_candidates = tuple(cover_candidates)
    app.include_router(router)


@router.get("/cover/{identifier}", response_model=None)
async def get_cover(identifier: str, request: Request) -> dict[str, Any] | Response:
    """
    Get the cover image of a track as a data URL.

    Supports HTTP caching via ETag/If-None-Match headers.
    """
    if _library_db is None or not _library_db.is_open:
        raise HTTPException(status_code=503, detail="Library not initialized")

    track = await _library_db.get_track(identifier)
    if track is None:
        raise HTTPException(status_code=404, detail="track not found")

    cover = await asyncio.to_thread(find_cover_art, track.file_path, _cover_candidates)
    if cover is None:
        raise HTTPException(status_code=404, detail="cover image not found")

    etag = cover.etag
    if_none_match = request.headers.get("if-none-match")
    if if_none_match and if_none_match.strip('"') == etag:
        return Response(status_code=304)

    encoded = base64.b64encode(cover.data).decode("ascii")
    return JSONResponse(
        {"image_base64": f"data:{cover.mime_type};base64,{encoded}"},
        headers={
            "ETag": f'"{etag}"',
            "Cache-Control": "public, max-age=86400",  # Cache for 1 day
        },
    )
