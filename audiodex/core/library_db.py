"""
Music library store: one SQLite file, one connection, one writer.

Goals:
- SQLite + aiosqlite, async/await friendly.
- Every write, and every read that decides a write, runs under a single lock
  held around the single connection. Two writes never overlap, no matter how
  many indexer workers call in.
- Lookup rows (artists/albums/genres) are get-or-insert; tracks are
  insert-if-absent. Neither ever produces a duplicate row.

Note:
- Models/DTOs and normalization helpers live in `audiodex.core.db.models`
- Schema/migrations live in `audiodex.core.db.schema`
- Read queries live in `audiodex.core.db.queries`
- `LibraryDb` remains the public facade used by the rest of the codebase
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Sequence

import aiosqlite

from audiodex.core import StoreError
from audiodex.core.db import queries
from audiodex.core.db.models import (
    AlbumRow,
    ArtistRow,
    GenreRow,
    InsertOutcome,
    NewTrack,
    TrackRow,
    normalize_int,
    normalize_text,
)
from audiodex.core.db.schema import SCHEMA_VERSION
from audiodex.core.db.schema import ensure_schema as ensure_schema_sql

logger = logging.getLogger(__name__)


def _is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE constraint failed" in str(exc)


class LibraryDb:
    """
    Async access layer for the music library DB.

    Usage:
        db = LibraryDb("music_library.sqlite")
        await db.open()
        await db.ensure_schema()
        ... get_or_insert_* / insert_track / queries ...
        await db.close()

    or `async with LibraryDb(path) as db:` (opens and ensures the schema).

    Notes:
    - This class is designed to be injected into other components.
    - `read_only=True` opens an existing file with `mode=ro` and sets
      `PRAGMA query_only`, so the HTTP layer cannot write even by mistake;
      write methods refuse to run.
    """

    def __init__(self, db_path: str | Path, *, read_only: bool = False) -> None:
        self._db_path = str(db_path)
        self._read_only = read_only
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def read_only(self) -> bool:
        return self._read_only

    @property
    def path(self) -> str:
        return self._db_path

    async def open(self) -> None:
        if self._conn is not None:
            return
        try:
            if self._read_only and self._db_path != ":memory:":
                # mode=ro never creates a missing file
                uri = f"{Path(self._db_path).absolute().as_uri()}?mode=ro"
                conn = await aiosqlite.connect(uri, uri=True)
            else:
                conn = await aiosqlite.connect(self._db_path)
        except sqlite3.Error as e:
            raise StoreError(f"cannot open database {self._db_path}: {e}") from e

        try:
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA foreign_keys = ON;")
            await conn.execute("PRAGMA busy_timeout = 5000;")
            if self._read_only:
                await conn.execute("PRAGMA query_only = ON;")
            else:
                # Pragmas: modern defaults without being clever.
                await conn.execute("PRAGMA journal_mode = WAL;")
                await conn.execute("PRAGMA synchronous = NORMAL;")
                await conn.execute("PRAGMA temp_store = MEMORY;")
        except sqlite3.Error as e:
            await conn.close()
            raise StoreError(f"cannot configure database {self._db_path}: {e}") from e

        self._conn = conn
        logger.debug("Opened library DB %s (read_only=%s)", self._db_path, self._read_only)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    async def __aenter__(self) -> LibraryDb:
        await self.open()
        try:
            await self.ensure_schema()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreError("LibraryDb is not open. Call await db.open() first.")
        return self._conn

    @asynccontextmanager
    async def _writer(self) -> AsyncIterator[aiosqlite.Connection]:
        """Hold the write guard and hand out the connection for one operation."""
        if self._read_only:
            raise StoreError("LibraryDb was opened read-only")
        conn = self._require_conn()
        async with self._write_lock:
            yield conn

    async def _rollback(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.rollback()
        except sqlite3.Error as e:
            logger.debug("Rollback failed on %s: %s", self._db_path, e)

    async def ensure_schema(self) -> None:
        """
        Create or migrate schema to current version.

        A read-only store is only checked: it must already be at the current version.
        """
        conn = self._require_conn()
        if self._read_only:
            try:
                cursor = await conn.execute("PRAGMA user_version;")
                row = await cursor.fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"cannot read schema version of {self._db_path}: {e}") from e
            version = int(row[0]) if row is not None else 0
            if version != SCHEMA_VERSION:
                raise StoreError(
                    f"Database {self._db_path} has schema version {version}, "
                    f"expected {SCHEMA_VERSION}. Run the indexer first."
                )
            return

        async with self._writer() as conn:
            try:
                await ensure_schema_sql(conn)
            except (sqlite3.Error, RuntimeError) as e:
                await self._rollback(conn)
                raise StoreError(f"cannot initialize schema in {self._db_path}: {e}") from e

    # ===========================================================================
    # Get-or-insert for lookup tables
    # ===========================================================================

    async def _lookup_id(
        self, conn: aiosqlite.Connection, sql: str, params: Sequence[Any]
    ) -> int | None:
        cursor = await conn.execute(sql, params)
        row = await cursor.fetchone()
        return int(row[0]) if row is not None else None

    async def _get_or_insert(
        self,
        what: str,
        *,
        select_sql: str,
        select_params: Sequence[Any],
        insert_sql: str,
        insert_params: Sequence[Any],
    ) -> int:
        """
        Return the id of the row matched by `select_sql`, inserting it if absent.

        A UNIQUE violation on insert means another writer created the row
        between our lookup and our insert; we re-read it and return its id.
        """
        async with self._writer() as conn:
            try:
                existing = await self._lookup_id(conn, select_sql, select_params)
                if existing is not None:
                    return existing

                try:
                    cursor = await conn.execute(insert_sql, insert_params)
                except sqlite3.IntegrityError as e:
                    if not _is_unique_violation(e):
                        raise
                    await self._rollback(conn)
                    existing = await self._lookup_id(conn, select_sql, select_params)
                    if existing is None:
                        raise
                    logger.debug("Recovered concurrent insert of %s %r", what, select_params)
                    return existing

                await conn.commit()
                if cursor.lastrowid is None:
                    raise StoreError(f"insert of {what} returned no row id")
                return int(cursor.lastrowid)
            except sqlite3.Error as e:
                await self._rollback(conn)
                raise StoreError(f"failed to get/insert {what} {select_params!r}: {e}") from e

    async def get_or_insert_artist(self, name: str) -> int:
        """Get or create an artist by name (case-insensitive), return ID."""
        clean = normalize_text(name)
        if clean is None:
            raise ValueError("artist name must not be empty")
        return await self._get_or_insert(
            "artist",
            select_sql="SELECT id FROM artists WHERE name = ? COLLATE NOCASE;",
            select_params=(clean,),
            insert_sql="INSERT INTO artists (name) VALUES (?);",
            insert_params=(clean,),
        )

    async def get_or_insert_album(
        self, title: str, artist_id: int, release_year: int | None = None
    ) -> int:
        """Get or create an album by title (case-insensitive) + artist_id, return ID."""
        clean = normalize_text(title)
        if clean is None:
            raise ValueError("album title must not be empty")
        return await self._get_or_insert(
            "album",
            select_sql=(
                "SELECT id FROM albums WHERE title = ? COLLATE NOCASE AND artist_id = ?;"
            ),
            select_params=(clean, int(artist_id)),
            insert_sql="INSERT INTO albums (title, artist_id, release_year) VALUES (?, ?, ?);",
            insert_params=(clean, int(artist_id), normalize_int(release_year)),
        )

    async def get_or_insert_genre(self, name: str) -> int:
        """Get or create a genre by name (case-insensitive), return ID."""
        clean = normalize_text(name)
        if clean is None:
            raise ValueError("genre name must not be empty")
        return await self._get_or_insert(
            "genre",
            select_sql="SELECT id FROM genres WHERE name = ? COLLATE NOCASE;",
            select_params=(clean,),
            insert_sql="INSERT INTO genres (name) VALUES (?);",
            insert_params=(clean,),
        )

    # ===========================================================================
    # Tracks: insert-if-absent
    # ===========================================================================

    async def insert_track(self, track: NewTrack) -> InsertOutcome:
        """
        Insert a track unless one with the same identifier or path exists.

        An existing row is left untouched and reported as DUPLICATE; that is
        not an error.
        """
        title = normalize_text(track.title)
        if title is None:
            raise ValueError("track title must not be empty")
        if not track.identifier or not track.file_path:
            raise ValueError("track identifier and file_path must not be empty")

        async with self._writer() as conn:
            try:
                cursor = await conn.execute(
                    """
                    SELECT human_hash_id FROM audio_files
                    WHERE human_hash_id = ? OR file_path = ?
                    LIMIT 1;
                    """,
                    (track.identifier, track.file_path),
                )
                row = await cursor.fetchone()
                if row is not None:
                    logger.debug(
                        "Track already stored: %s (identifier: %s)", track.file_path, row[0]
                    )
                    return InsertOutcome.DUPLICATE

                try:
                    await conn.execute(
                        """
                        INSERT INTO audio_files (
                            human_hash_id, file_path, title, duration_seconds, lossless,
                            track_number, disc_number, year,
                            artist_id, album_id, genre_id
                        ) VALUES (
                            :identifier, :file_path, :title, :duration_seconds, :lossless,
                            :track_number, :disc_number, :year,
                            :artist_id, :album_id, :genre_id
                        )
                        """,
                        {
                            "identifier": track.identifier,
                            "file_path": track.file_path,
                            "title": title,
                            "duration_seconds": normalize_int(track.duration_seconds),
                            "lossless": 1 if track.lossless else 0,
                            "track_number": normalize_int(track.track_number),
                            "disc_number": normalize_int(track.disc_number),
                            "year": normalize_int(track.year),
                            "artist_id": int(track.artist_id),
                            "album_id": int(track.album_id),
                            "genre_id": normalize_int(track.genre_id),
                        },
                    )
                except sqlite3.IntegrityError as e:
                    if not _is_unique_violation(e):
                        raise
                    await self._rollback(conn)
                    logger.debug("Track inserted concurrently: %s", track.file_path)
                    return InsertOutcome.DUPLICATE

                await conn.commit()
                return InsertOutcome.INSERTED
            except sqlite3.Error as e:
                await self._rollback(conn)
                raise StoreError(f"failed to insert track {track.file_path}: {e}") from e

    # ===========================================================================
    # Read queries (delegated to the queries module)
    # ===========================================================================

    async def get_track(self, identifier: str) -> TrackRow | None:
        return await queries.get_track(self._require_conn(), identifier)

    async def get_track_by_path(self, file_path: str) -> TrackRow | None:
        return await queries.get_track_by_path(self._require_conn(), file_path)

    async def list_tracks(self) -> list[TrackRow]:
        return await queries.list_tracks(self._require_conn())

    async def list_tracks_by_artist(self, artist_id: int) -> list[TrackRow]:
        return await queries.list_tracks_by_artist(self._require_conn(), artist_id)

    async def list_tracks_by_album(self, album_id: int) -> list[TrackRow]:
        return await queries.list_tracks_by_album(self._require_conn(), album_id)

    async def search_tracks(self, query: str) -> list[TrackRow]:
        return await queries.search_tracks(self._require_conn(), query)

    async def search_albums(self, query: str) -> list[AlbumRow]:
        return await queries.search_albums(self._require_conn(), query)

    async def get_artist(self, artist_id: int) -> ArtistRow | None:
        return await queries.get_artist(self._require_conn(), artist_id)

    async def get_album(self, album_id: int) -> AlbumRow | None:
        return await queries.get_album(self._require_conn(), album_id)

    async def get_genre(self, genre_id: int) -> GenreRow | None:
        return await queries.get_genre(self._require_conn(), genre_id)

    async def count_tracks(self) -> int:
        return await queries.count_tracks(self._require_conn())

    async def count_artists(self) -> int:
        return await queries.count_artists(self._require_conn())

    async def count_albums(self) -> int:
        return await queries.count_albums(self._require_conn())

    async def count_genres(self) -> int:
        return await queries.count_genres(self._require_conn())
