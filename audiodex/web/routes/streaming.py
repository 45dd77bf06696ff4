"""
Streaming Routes for audiodex.

Provides /stream/{id}: the raw bytes of a track's file, no transcoding.
Byte-range requests are honored so players can seek.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

if TYPE_CHECKING:
    from audiodex.core.library_db import LibraryDb

logger = logging.getLogger(__name__)

router = APIRouter(tags=["streaming"])

# Reference set during route registration
_library_db: LibraryDb | None = None

CHUNK_SIZE = 65536  # 64KB chunks


def register_streaming_routes(app, library_db: LibraryDb) -> None:
    """
    Register streaming routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        library_db: LibraryDb used to resolve identifiers to files
    """
    global _library_db
    _library_db = library_db
    app.include_router(router)


@router.get("/stream/{identifier}")
async def stream_track(identifier: str, request: Request) -> StreamingResponse:
    """
    Stream a track file.

    Returns 206 with Content-Range for a satisfiable Range header and 200 when
    there is none or it cannot be parsed.

    Raises:
        HTTPException: 404 if the track or its file is missing, 416 if the
            requested range lies outside the file.
    """
    if _library_db is None or not _library_db.is_open:
        raise HTTPException(status_code=503, detail="Library not initialized")

    track = await _library_db.get_track(identifier)
    if track is None:
        raise HTTPException(status_code=404, detail="track not found")

    file_path = Path(track.file_path)
    try:
        file_size = file_path.stat().st_size
    except OSError:
        raise HTTPException(status_code=404, detail="track file not found") from None

    content_type = _get_content_type(file_path)
    range_header = request.headers.get("range")

    start_byte, end_byte = 0, file_size - 1
    status_code = 200
    headers = {"Accept-Ranges": "bytes"}

    if range_header:
        try:
            byte_range = _parse_range_header(range_header, file_size)
        except ValueError:
            logger.debug("Ignoring malformed Range header %r", range_header)
        else:
            if byte_range is None:
                raise HTTPException(
                    status_code=416,
                    detail="requested range not satisfiable",
                    headers={"Content-Range": f"bytes */{file_size}"},
                )
            start_byte, end_byte = byte_range
            status_code = 206
            headers["Content-Range"] = f"bytes {start_byte}-{end_byte}/{file_size}"

    content_length = max(0, end_byte - start_byte + 1)
    headers["Content-Length"] = str(content_length)

    logger.debug(
        "Streaming %s bytes %d-%d/%d (%s)",
        file_path,
        start_byte,
        end_byte,
        file_size,
        content_type,
    )

    async def generate() -> AsyncIterator[bytes]:
        """Generate file chunks from the specified byte range."""
        with open(file_path, "rb") as f:
            f.seek(start_byte)
            remaining = content_length

            while remaining > 0:
                chunk = f.read(min(CHUNK_SIZE, remaining))
                if not chunk:
                    break
                yield chunk
                remaining -= len(chunk)

    return StreamingResponse(
        generate(),
        status_code=status_code,
        media_type=content_type,
        headers=headers,
    )


def _get_content_type(file_path: Path) -> str:
    """Get the MIME type for an audio file."""
    suffix = file_path.suffix.lower()
    content_types = {
        ".mp3": "audio/mpeg",
        ".flac": "audio/flac",
        ".ogg": "audio/ogg",
        ".wav": "audio/wav",
        ".aiff": "audio/aiff",
        ".aif": "audio/aiff",
        ".m4a": "audio/mp4",
        ".aac": "audio/aac",
        ".wma": "audio/x-ms-wma",
    }
    return content_types.get(suffix, "application/octet-stream")


def _parse_range_header(range_header: str, file_size: int) -> tuple[int, int] | None:
    """
    Resolve the first range of a `bytes=` Range header against the file size.

    Returns an inclusive (start, end) pair, or None when the range is
    unsatisfiable (starts past the end, or an empty suffix). The end is clamped
    to the last byte.

    Raises:
        ValueError: if the header is not a well-formed byte range.
    """
    unit, sep, ranges = range_header.partition("=")
    if not sep or unit.strip().lower() != "bytes":
        raise ValueError(f"unsupported range unit: {range_header!r}")

    first, sep, last = ranges.split(",", 1)[0].strip().partition("-")
    if not sep:
        raise ValueError(f"malformed byte range: {range_header!r}")

    if not first:
        # Suffix range: "-500" means the last 500 bytes
        length = int(last)
        if length <= 0 or file_size == 0:
            return None
        return max(0, file_size - length), file_size - 1

    start = int(first)
    end = int(last) if last else file_size - 1
    if end < start:
        raise ValueError(f"byte range ends before it starts: {range_header!r}")
    if start >= file_size:
        return None
    return start, min(end, file_size - 1)
