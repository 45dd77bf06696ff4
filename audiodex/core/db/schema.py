"""
Database schema + migrations for audiodex.

- Connection management and the `LibraryDb` facade live in `library_db.py`
- Schema creation, schema versioning, and forward-only migrations live here

Design notes:
- We use SQLite `PRAGMA user_version` as the schema version.
- Migrations are forward-only (no downgrade support).
- Column names and constraints are read by the HTTP API and by external
  consumers of the database file; change them only with a migration.
"""

from __future__ import annotations

from typing import Final

import aiosqlite

# Bump when you change the schema and add a migration in `migrate()`.
SCHEMA_VERSION: Final[int] = 1


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Create or migrate schema to current version.

    This function assumes:
    - `conn` is an open aiosqlite connection
    - foreign_keys pragma is enabled by the caller
    """
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current = int(row[0]) if row is not None else 0

    if current > SCHEMA_VERSION:
        raise RuntimeError(
            f"Database schema version {current} is newer than supported {SCHEMA_VERSION}."
        )

    if current == SCHEMA_VERSION:
        return

    await migrate(conn, from_version=current, to_version=SCHEMA_VERSION)
    await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
    await conn.commit()


async def migrate(conn: aiosqlite.Connection, *, from_version: int, to_version: int) -> None:
    """Perform forward-only migrations."""
    # v0 -> v1
    if from_version == 0 and to_version >= 1:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS artists (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL COLLATE NOCASE
            )
            """
        )

        # UNIQUE(title, artist_id) inherits the NOCASE collation of `title`.
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS albums (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL COLLATE NOCASE,
                artist_id INTEGER NOT NULL,
                release_year INTEGER,
                FOREIGN KEY (artist_id) REFERENCES artists(id) ON DELETE CASCADE,
                UNIQUE(title, artist_id)
            )
            """
        )
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_albums_artist_id ON albums(artist_id);")

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS genres (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL COLLATE NOCASE
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS audio_files (
                human_hash_id TEXT PRIMARY KEY NOT NULL,
                file_path TEXT UNIQUE NOT NULL,
                title TEXT NOT NULL,
                duration_seconds INTEGER,
                lossless BOOLEAN NOT NULL,
                track_number INTEGER,
                disc_number INTEGER,
                year INTEGER,
                artist_id INTEGER NOT NULL,
                album_id INTEGER NOT NULL,
                genre_id INTEGER,
                FOREIGN KEY (artist_id) REFERENCES artists(id) ON DELETE CASCADE,
                FOREIGN KEY (album_id) REFERENCES albums(id) ON DELETE CASCADE,
                FOREIGN KEY (genre_id) REFERENCES genres(id) ON DELETE SET NULL
            )
            """
        )

        # Indexes: tuned for the browse queries of the HTTP API.
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_audio_files_artist_id ON audio_files(artist_id);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_audio_files_album_id ON audio_files(album_id);"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_audio_files_genre_id ON audio_files(genre_id);"
        )

        await conn.commit()
        from_version = 1

    if from_version != to_version:
        raise RuntimeError(f"No migration path from {from_version} to {to_version}.")
