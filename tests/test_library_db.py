"""
Tests for audiodex.core.library_db.

These tests verify:
- Schema creation and versioning
- Get-or-insert for artists, albums and genres (case-insensitive)
- Insert-if-absent for tracks (dedup by path and by identifier)
- Recovery from a concurrent lookup insert
- Read-only mode
- Read queries used by the HTTP API
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from audiodex.core import StoreError
from audiodex.core.db import SCHEMA_VERSION
from audiodex.core.db.models import InsertOutcome, NewTrack
from audiodex.core.db.queries import like_pattern
from audiodex.core.library_db import LibraryDb

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def db() -> LibraryDb:
    """Create an in-memory database for testing."""
    db = LibraryDb(":memory:")
    await db.open()
    await db.ensure_schema()
    yield db
    await db.close()


async def add_track(
    db: LibraryDb,
    identifier: str,
    file_path: str,
    *,
    title: str = "Song",
    artist: str = "Artist",
    album: str = "Album",
) -> InsertOutcome:
    artist_id = await db.get_or_insert_artist(artist)
    album_id = await db.get_or_insert_album(album, artist_id)
    return await db.insert_track(
        NewTrack(
            identifier=identifier,
            file_path=file_path,
            title=title,
            lossless=False,
            artist_id=artist_id,
            album_id=album_id,
        )
    )


# =============================================================================
# Lifecycle and schema
# =============================================================================


class TestLifecycle:
    async def test_open_close(self) -> None:
        """Test basic open/close lifecycle."""
        db = LibraryDb(":memory:")
        assert not db.is_open

        await db.open()
        assert db.is_open

        await db.close()
        assert not db.is_open

    async def test_queries_require_open(self) -> None:
        db = LibraryDb(":memory:")
        with pytest.raises(StoreError):
            await db.count_tracks()

    async def test_ensure_schema_creates_tables(self, db: LibraryDb) -> None:
        assert await db.count_tracks() == 0
        assert await db.count_artists() == 0
        assert await db.count_albums() == 0
        assert await db.count_genres() == 0

    async def test_ensure_schema_is_idempotent(self, tmp_path: Path) -> None:
        path = tmp_path / "lib.sqlite"
        async with LibraryDb(path) as db:
            await add_track(db, "one-two-three-four", "/music/a.mp3")
        async with LibraryDb(path) as db:
            await db.ensure_schema()
            assert await db.count_tracks() == 1

    async def test_newer_schema_is_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "lib.sqlite"
        async with LibraryDb(path) as db:
            await db._require_conn().execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1};")
            await db._require_conn().commit()

        with pytest.raises(StoreError):
            async with LibraryDb(path):
                pass

    async def test_unopenable_path(self, tmp_path: Path) -> None:
        db = LibraryDb(tmp_path / "missing-dir" / "lib.sqlite")
        with pytest.raises(StoreError):
            await db.open()


# =============================================================================
# Lookup tables
# =============================================================================


class TestGetOrInsert:
    async def test_artist_is_case_insensitive(self, db: LibraryDb) -> None:
        first = await db.get_or_insert_artist("Pink Floyd")
        second = await db.get_or_insert_artist("PINK FLOYD")
        assert first == second
        assert await db.count_artists() == 1
        artist = await db.get_artist(first)
        assert artist is not None
        assert artist.name == "Pink Floyd"

    async def test_artist_whitespace_is_trimmed(self, db: LibraryDb) -> None:
        assert await db.get_or_insert_artist("  Queen ") == await db.get_or_insert_artist("queen")
        assert await db.count_artists() == 1

    async def test_blank_names_are_rejected(self, db: LibraryDb) -> None:
        with pytest.raises(ValueError):
            await db.get_or_insert_artist("   ")
        with pytest.raises(ValueError):
            await db.get_or_insert_genre("")
        artist_id = await db.get_or_insert_artist("A")
        with pytest.raises(ValueError):
            await db.get_or_insert_album("", artist_id)

    async def test_album_is_scoped_to_artist(self, db: LibraryDb) -> None:
        x = await db.get_or_insert_artist("X")
        y = await db.get_or_insert_artist("Y")
        m_x = await db.get_or_insert_album("Greatest Hits", x, 1990)
        m_x_again = await db.get_or_insert_album("greatest hits", x)
        m_y = await db.get_or_insert_album("Greatest Hits", y)

        assert m_x == m_x_again
        assert m_x != m_y
        assert await db.count_albums() == 2
        album = await db.get_album(m_x)
        assert album is not None
        assert album.release_year == 1990
        assert album.artist_id == x

    async def test_genre_is_case_insensitive(self, db: LibraryDb) -> None:
        assert await db.get_or_insert_genre("Rock") == await db.get_or_insert_genre("rock")
        assert await db.count_genres() == 1

    async def test_concurrent_get_or_insert(self, db: LibraryDb) -> None:
        names = ["Björk", "björk", "BJÖRK", "Air", "AIR", "air"] * 5
        ids = await asyncio.gather(*(db.get_or_insert_artist(n) for n in names))
        # NOCASE folds ASCII letters only: "BJÖRK" stays apart from "Björk"
        assert len(set(ids)) == 3
        assert len({i for n, i in zip(names, ids) if n.lower() == "air"}) == 1

    async def test_recovers_from_racing_insert(
        self, db: LibraryDb, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        existing = await db.get_or_insert_artist("Queen")
        original = LibraryDb._lookup_id
        calls = 0

        async def miss_once(self, conn, sql, params):
            nonlocal calls
            calls += 1
            if calls == 1:
                return None
            return await original(self, conn, sql, params)

        monkeypatch.setattr(LibraryDb, "_lookup_id", miss_once)

        assert await db.get_or_insert_artist("QUEEN") == existing
        assert calls == 2
        assert await db.count_artists() == 1


# =============================================================================
# Tracks
# =============================================================================


class TestInsertTrack:
    async def test_insert_and_read_back(self, db: LibraryDb) -> None:
        artist_id = await db.get_or_insert_artist("Artist")
        album_id = await db.get_or_insert_album("Album", artist_id)
        genre_id = await db.get_or_insert_genre("Ambient")
        outcome = await db.insert_track(
            NewTrack(
                identifier="alpha-bravo-charlie-delta",
                file_path="/music/a.flac",
                title="A",
                lossless=True,
                artist_id=artist_id,
                album_id=album_id,
                genre_id=genre_id,
                track_number=2,
                disc_number=1,
                year=2001,
            )
        )
        assert outcome is InsertOutcome.INSERTED

        track = await db.get_track("alpha-bravo-charlie-delta")
        assert track is not None
        assert track.file_path == "/music/a.flac"
        assert track.lossless is True
        assert track.genre_id == genre_id
        assert track.track_number == 2
        assert track.year == 2001
        assert track.duration_seconds is None
        assert await db.get_track_by_path("/music/a.flac") == track

    async def test_dedup_by_path(self, db: LibraryDb) -> None:
        assert await add_track(db, "one-one-one-one", "/music/a.mp3") is InsertOutcome.INSERTED
        assert await add_track(db, "two-two-two-two", "/music/a.mp3") is InsertOutcome.DUPLICATE
        assert await db.count_tracks() == 1
        assert await db.get_track("two-two-two-two") is None

    async def test_dedup_by_identifier(self, db: LibraryDb) -> None:
        assert await add_track(db, "same-same-same-same", "/music/a.mp3") is InsertOutcome.INSERTED
        assert (
            await add_track(db, "same-same-same-same", "/music/b.mp3") is InsertOutcome.DUPLICATE
        )
        assert await db.count_tracks() == 1

    async def test_same_tags_at_different_paths(self, db: LibraryDb) -> None:
        a = await add_track(db, "id-at-path-a", "/music/a.mp3", title="T")
        b = await add_track(db, "id-at-path-b", "/music/b.mp3", title="T")
        assert a is b is InsertOutcome.INSERTED
        assert await db.count_tracks() == 2

    async def test_concurrent_inserts_of_one_path(self, db: LibraryDb) -> None:
        outcomes = await asyncio.gather(
            *(add_track(db, f"id-{n}", "/music/same.mp3") for n in range(8))
        )
        assert outcomes.count(InsertOutcome.INSERTED) == 1
        assert outcomes.count(InsertOutcome.DUPLICATE) == 7
        assert await db.count_tracks() == 1

    async def test_unknown_foreign_key_is_rejected(self, db: LibraryDb) -> None:
        with pytest.raises(StoreError):
            await db.insert_track(
                NewTrack(
                    identifier="orphan",
                    file_path="/music/orphan.mp3",
                    title="Orphan",
                    lossless=False,
                    artist_id=999,
                    album_id=999,
                )
            )
        assert await db.count_tracks() == 0

    async def test_blank_title_is_rejected(self, db: LibraryDb) -> None:
        with pytest.raises(ValueError):
            await add_track(db, "blank", "/music/blank.mp3", title="  ")


# =============================================================================
# Read-only mode
# =============================================================================


class TestReadOnly:
    async def test_reads_work_and_writes_are_refused(self, tmp_path: Path) -> None:
        path = tmp_path / "lib.sqlite"
        async with LibraryDb(path) as db:
            await add_track(db, "one-two-three-four", "/music/a.mp3")

        async with LibraryDb(path, read_only=True) as ro:
            assert ro.read_only
            assert await ro.count_tracks() == 1
            with pytest.raises(StoreError):
                await ro.get_or_insert_artist("New")

    async def test_unindexed_file_is_refused(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.sqlite"
        path.touch()
        with pytest.raises(StoreError):
            async with LibraryDb(path, read_only=True):
                pass

    async def test_missing_file_is_not_created(self, tmp_path: Path) -> None:
        path = tmp_path / "typo.sqlite"
        with pytest.raises(StoreError):
            async with LibraryDb(path, read_only=True):
                pass
        assert not path.exists()

    async def test_reads_while_writer_is_open(self, tmp_path: Path) -> None:
        path = tmp_path / "lib.sqlite"
        async with LibraryDb(path) as writer:
            await add_track(writer, "one-two-three-four", "/music/a.mp3")
            async with LibraryDb(path, read_only=True) as ro:
                assert await ro.count_tracks() == 1
                await add_track(writer, "five-six-seven-eight", "/music/b.mp3")
                assert await ro.count_tracks() == 2


# =============================================================================
# Read queries
# =============================================================================


class TestQueries:
    @pytest.fixture
    async def populated(self, db: LibraryDb) -> LibraryDb:
        await add_track(db, "t1", "/m/1.mp3", title="Hello World", artist="X", album="First")
        await add_track(db, "t2", "/m/2.mp3", title="100% Pure", artist="X", album="First")
        await add_track(db, "t3", "/m/3.mp3", title="snake_case", artist="Y", album="Second_Take")
        return db

    async def test_list_tracks_is_ordered_by_path(self, populated: LibraryDb) -> None:
        assert [t.identifier for t in await populated.list_tracks()] == ["t1", "t2", "t3"]

    async def test_tracks_by_artist_and_album(self, populated: LibraryDb) -> None:
        t1 = await populated.get_track("t1")
        assert t1 is not None
        by_artist = await populated.list_tracks_by_artist(t1.artist_id)
        assert {t.identifier for t in by_artist} == {"t1", "t2"}
        by_album = await populated.list_tracks_by_album(t1.album_id)
        assert {t.identifier for t in by_album} == {"t1", "t2"}
        assert await populated.list_tracks_by_artist(12345) == []

    async def test_search_tracks_is_case_insensitive(self, populated: LibraryDb) -> None:
        assert [t.identifier for t in await populated.search_tracks("hello")] == ["t1"]

    async def test_search_wildcards_match_literally(self, populated: LibraryDb) -> None:
        assert [t.identifier for t in await populated.search_tracks("%")] == ["t2"]
        assert [t.identifier for t in await populated.search_tracks("_")] == ["t3"]

    async def test_search_albums(self, populated: LibraryDb) -> None:
        assert [a.title for a in await populated.search_albums("first")] == ["First"]
        assert [a.title for a in await populated.search_albums("_")] == ["Second_Take"]
        assert await populated.search_albums("nothing") == []

    def test_like_pattern(self) -> None:
        assert like_pattern("a%b_c\\d") == "%a\\%b\\_c\\\\d%"
