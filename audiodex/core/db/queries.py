"""
Read-only DB queries used by the HTTP API and by tests.

Design:
- Functions are *pure DB helpers*: they take an open `aiosqlite.Connection`
  and return materialized dataclasses.
- These functions assume `conn.row_factory = aiosqlite.Row`.
- Nothing in here writes.

Important:
- Do NOT interpolate user input into SQL. Search terms go through
  `like_pattern` and are bound as parameters.
"""

from __future__ import annotations

import aiosqlite

from audiodex.core.db.models import AlbumRow, ArtistRow, GenreRow, TrackRow

_TRACK_COLUMNS = """
    human_hash_id, file_path, title, duration_seconds, lossless,
    track_number, disc_number, year, artist_id, album_id, genre_id
"""


def _row_to_track(row: aiosqlite.Row) -> TrackRow:
    """Convert an aiosqlite Row to a TrackRow dataclass."""
    return TrackRow(
        identifier=str(row["human_hash_id"]),
        file_path=str(row["file_path"]),
        title=str(row["title"]),
        duration_seconds=row["duration_seconds"],
        lossless=bool(row["lossless"]),
        track_number=row["track_number"],
        disc_number=row["disc_number"],
        year=row["year"],
        artist_id=int(row["artist_id"]),
        album_id=int(row["album_id"]),
        genre_id=row["genre_id"],
    )


def _row_to_album(row: aiosqlite.Row) -> AlbumRow:
    return AlbumRow(
        id=int(row["id"]),
        title=str(row["title"]),
        artist_id=int(row["artist_id"]),
        release_year=row["release_year"],
    )


def like_pattern(query: str) -> str:
    """Build a `LIKE ... ESCAPE '\\'` substring pattern matching `query` literally."""
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


# ---------------------------------------------------------------------------
# Tracks
# ---------------------------------------------------------------------------


async def get_track(conn: aiosqlite.Connection, identifier: str) -> TrackRow | None:
    cursor = await conn.execute(
        f"SELECT {_TRACK_COLUMNS} FROM audio_files WHERE human_hash_id = ?;", (identifier,)
    )
    row = await cursor.fetchone()
    return _row_to_track(row) if row else None


async def get_track_by_path(conn: aiosqlite.Connection, file_path: str) -> TrackRow | None:
    cursor = await conn.execute(
        f"SELECT {_TRACK_COLUMNS} FROM audio_files WHERE file_path = ?;", (file_path,)
    )
    row = await cursor.fetchone()
    return _row_to_track(row) if row else None


async def list_tracks(conn: aiosqlite.Connection) -> list[TrackRow]:
    cursor = await conn.execute(
        f"SELECT {_TRACK_COLUMNS} FROM audio_files ORDER BY file_path;"
    )
    rows = await cursor.fetchall()
    return [_row_to_track(r) for r in rows]


async def list_tracks_by_artist(conn: aiosqlite.Connection, artist_id: int) -> list[TrackRow]:
    cursor = await conn.execute(
        f"""
        SELECT {_TRACK_COLUMNS} FROM audio_files
        WHERE artist_id = ?
        ORDER BY album_id, disc_number, track_number, file_path;
        """,
        (int(artist_id),),
    )
    rows = await cursor.fetchall()
    return [_row_to_track(r) for r in rows]


async def list_tracks_by_album(conn: aiosqlite.Connection, album_id: int) -> list[TrackRow]:
    cursor = await conn.execute(
        f"""
        SELECT {_TRACK_COLUMNS} FROM audio_files
        WHERE album_id = ?
        ORDER BY disc_number, track_number, file_path;
        """,
        (int(album_id),),
    )
    rows = await cursor.fetchall()
    return [_row_to_track(r) for r in rows]


async def search_tracks(conn: aiosqlite.Connection, query: str) -> list[TrackRow]:
    """Tracks whose title contains `query`, case-insensitively."""
    cursor = await conn.execute(
        f"""
        SELECT {_TRACK_COLUMNS} FROM audio_files
        WHERE title LIKE ? ESCAPE '\\'
        ORDER BY title COLLATE NOCASE, file_path;
        """,
        (like_pattern(query),),
    )
    rows = await cursor.fetchall()
    return [_row_to_track(r) for r in rows]


async def count_tracks(conn: aiosqlite.Connection) -> int:
    cursor = await conn.execute("SELECT COUNT(*) AS c FROM audio_files;")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------


async def get_artist(conn: aiosqlite.Connection, artist_id: int) -> ArtistRow | None:
    cursor = await conn.execute("SELECT id, name FROM artists WHERE id = ?;", (int(artist_id),))
    row = await cursor.fetchone()
    return ArtistRow(id=int(row["id"]), name=str(row["name"])) if row else None


async def get_album(conn: aiosqlite.Connection, album_id: int) -> AlbumRow | None:
    cursor = await conn.execute(
        "SELECT id, title, artist_id, release_year FROM albums WHERE id = ?;", (int(album_id),)
    )
    row = await cursor.fetchone()
    return _row_to_album(row) if row else None


async def get_genre(conn: aiosqlite.Connection, genre_id: int) -> GenreRow | None:
    cursor = await conn.execute("SELECT id, name FROM genres WHERE id = ?;", (int(genre_id),))
    row = await cursor.fetchone()
    return GenreRow(id=int(row["id"]), name=str(row["name"])) if row else None


async def search_albums(conn: aiosqlite.Connection, query: str) -> list[AlbumRow]:
    """Albums whose title contains `query`, case-insensitively."""
    cursor = await conn.execute(
        """
        SELECT id, title, artist_id, release_year FROM albums
        WHERE title LIKE ? ESCAPE '\\'
        ORDER BY title, id;
        """,
        (like_pattern(query),),
    )
    rows = await cursor.fetchall()
    return [_row_to_album(r) for r in rows]


async def _count(conn: aiosqlite.Connection, table: str) -> int:
    cursor = await conn.execute(f"SELECT COUNT(*) AS c FROM {table};")
    row = await cursor.fetchone()
    return int(row["c"]) if row else 0


async def count_artists(conn: aiosqlite.Connection) -> int:
    return await _count(conn, "artists")


async def count_albums(conn: aiosqlite.Connection) -> int:
    return await _count(conn, "albums")


async def count_genres(conn: aiosqlite.Connection) -> int:
    return await _count(conn, "genres")
