"""
Tests for audiodex.web (FastAPI).

These tests verify:
- Health and welcome endpoints
- Track, artist, album and search endpoints
- Streaming with and without byte ranges
- Cover art lookup and ETag caching

The app is served from a read-only LibraryDb over a file the tests populate
through a separate writable connection.
"""

from __future__ import annotations

import base64
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from audiodex.config import ServerSettings
from audiodex.core.db.models import NewTrack
from audiodex.core.library_db import LibraryDb
from audiodex.web.routes.streaming import _parse_range_header
from audiodex.web.__main__ import parse_args
from audiodex.web.server import WebServer

AUDIO_BYTES = bytes(range(256)) * 8
COVER_BYTES = b"\xff\xd8\xff\xe0 fake jpeg payload"

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def library(tmp_path: Path) -> dict[str, object]:
    """Populate a library file and return what the tests need to know about it."""
    music = tmp_path / "music"
    (music / "x").mkdir(parents=True)
    (music / "y").mkdir(parents=True)
    (music / "x" / "a.mp3").write_bytes(AUDIO_BYTES)
    (music / "x" / "b.flac").write_bytes(AUDIO_BYTES)
    (music / "x" / "cover.jpg").write_bytes(COVER_BYTES)

    db_path = tmp_path / "library.sqlite"
    async with LibraryDb(db_path) as db:
        x = await db.get_or_insert_artist("X")
        y = await db.get_or_insert_artist("Y")
        m = await db.get_or_insert_album("Morning_Songs", x, 2001)
        n = await db.get_or_insert_album("Night", y)
        rows = [
            ("alpha-bravo-charlie-delta", music / "x" / "a.mp3", "Hello World", x, m, False),
            ("echo-foxtrot-golf-hotel", music / "x" / "b.flac", "100% Pure", x, m, True),
            ("india-juliet-kilo-lima", music / "y" / "gone.ogg", "Missing File", y, n, False),
        ]
        for identifier, path, title, artist_id, album_id, lossless in rows:
            await db.insert_track(
                NewTrack(
                    identifier=identifier,
                    file_path=str(path),
                    title=title,
                    lossless=lossless,
                    artist_id=artist_id,
                    album_id=album_id,
                )
            )
    return {"db_path": db_path, "artist_x": x, "artist_y": y, "album_m": m, "album_n": n}


@pytest.fixture
async def db(library: dict[str, object]) -> LibraryDb:
    """Open the populated library the way the server does."""
    async with LibraryDb(library["db_path"], read_only=True) as db:
        yield db


@pytest.fixture
async def web_server(db: LibraryDb) -> WebServer:
    """Create a WebServer instance for testing."""
    return WebServer(db, ServerSettings())


@pytest.fixture
async def client(web_server: WebServer) -> AsyncClient:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=web_server.app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# =============================================================================
# Basic endpoints
# =============================================================================


class TestBasics:
    async def test_health_check(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_welcome(self, client: AsyncClient) -> None:
        response = await client.get("/")
        assert response.status_code == 200
        assert "audiodex" in response.json()["message"]

    async def test_cors_headers(self, client: AsyncClient) -> None:
        response = await client.get("/health", headers={"Origin": "http://example.com"})
        assert "access-control-allow-origin" in response.headers

    async def test_closed_store_is_unavailable(
        self, client: AsyncClient, db: LibraryDb
    ) -> None:
        await db.close()
        response = await client.get("/tracks/all")
        assert response.status_code == 503


# =============================================================================
# Library endpoints
# =============================================================================


class TestTracks:
    async def test_get_track(self, client: AsyncClient, library: dict[str, object]) -> None:
        response = await client.get("/track/alpha-bravo-charlie-delta")
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "alpha-bravo-charlie-delta"
        assert data["title"] == "Hello World"
        assert data["artist_id"] == library["artist_x"]
        assert data["album_id"] == library["album_m"]
        assert data["file_path"].endswith("a.mp3")

    async def test_get_unknown_track(self, client: AsyncClient) -> None:
        response = await client.get("/track/no-such-track-here")
        assert response.status_code == 404
        assert "detail" in response.json()

    async def test_all_tracks(self, client: AsyncClient) -> None:
        response = await client.get("/tracks/all")
        assert response.status_code == 200
        assert len(response.json()) == 3

    async def test_artist_tracks(self, client: AsyncClient, library: dict[str, object]) -> None:
        response = await client.get(f"/artist/{library['artist_x']}")
        assert response.status_code == 200
        assert {t["title"] for t in response.json()} == {"Hello World", "100% Pure"}

    async def test_unknown_artist(self, client: AsyncClient) -> None:
        assert (await client.get("/artist/9999")).status_code == 404

    async def test_album_tracks(self, client: AsyncClient, library: dict[str, object]) -> None:
        response = await client.get(f"/album/{library['album_n']}")
        assert response.status_code == 200
        assert [t["title"] for t in response.json()] == ["Missing File"]

    async def test_unknown_album(self, client: AsyncClient) -> None:
        assert (await client.get("/album/9999")).status_code == 404

    async def test_non_numeric_album_id(self, client: AsyncClient) -> None:
        assert (await client.get("/album/abc")).status_code == 422


class TestSearch:
    async def test_search_tracks(self, client: AsyncClient) -> None:
        response = await client.get("/search/track/HELLO")
        assert response.status_code == 200
        assert [t["title"] for t in response.json()] == ["Hello World"]

    async def test_search_percent_is_literal(self, client: AsyncClient) -> None:
        response = await client.get("/search/track/%25")
        assert response.status_code == 200
        assert [t["title"] for t in response.json()] == ["100% Pure"]

    async def test_search_tracks_no_match(self, client: AsyncClient) -> None:
        assert (await client.get("/search/track/zzz")).status_code == 404

    async def test_search_blank_query(self, client: AsyncClient) -> None:
        assert (await client.get("/search/track/%20")).status_code == 400

    async def test_search_albums(self, client: AsyncClient, library: dict[str, object]) -> None:
        response = await client.get("/search/album/morning")
        assert response.status_code == 200
        assert response.json() == [
            {
                "id": library["album_m"],
                "title": "Morning_Songs",
                "artist_id": library["artist_x"],
                "release_year": 2001,
            }
        ]

    async def test_search_albums_underscore_is_literal(self, client: AsyncClient) -> None:
        response = await client.get("/search/album/_")
        assert response.status_code == 200
        assert [a["title"] for a in response.json()] == ["Morning_Songs"]

    async def test_search_albums_no_match(self, client: AsyncClient) -> None:
        assert (await client.get("/search/album/zzz")).status_code == 404


# =============================================================================
# Streaming
# =============================================================================


class TestStreaming:
    async def test_stream_whole_file(self, client: AsyncClient) -> None:
        response = await client.get("/stream/alpha-bravo-charlie-delta")
        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/mpeg"
        assert response.headers["accept-ranges"] == "bytes"
        assert response.content == AUDIO_BYTES

    async def test_content_type_by_extension(self, client: AsyncClient) -> None:
        response = await client.get("/stream/echo-foxtrot-golf-hotel")
        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/flac"

    async def test_stream_range(self, client: AsyncClient) -> None:
        response = await client.get(
            "/stream/alpha-bravo-charlie-delta", headers={"Range": "bytes=10-19"}
        )
        assert response.status_code == 206
        assert response.headers["content-range"] == f"bytes 10-19/{len(AUDIO_BYTES)}"
        assert response.content == AUDIO_BYTES[10:20]

    async def test_stream_suffix_range(self, client: AsyncClient) -> None:
        response = await client.get(
            "/stream/alpha-bravo-charlie-delta", headers={"Range": "bytes=-5"}
        )
        assert response.status_code == 206
        assert response.content == AUDIO_BYTES[-5:]

    @pytest.mark.parametrize("range_header", ["bytes=-0", "bytes=5000-6000", "bytes=2048-"])
    async def test_stream_unsatisfiable_range(
        self, client: AsyncClient, range_header: str
    ) -> None:
        response = await client.get(
            "/stream/alpha-bravo-charlie-delta", headers={"Range": range_header}
        )
        assert response.status_code == 416
        assert response.headers["content-range"] == f"bytes */{len(AUDIO_BYTES)}"

    async def test_stream_range_end_is_clamped(self, client: AsyncClient) -> None:
        response = await client.get(
            "/stream/alpha-bravo-charlie-delta", headers={"Range": "bytes=2040-9999"}
        )
        assert response.status_code == 206
        assert response.headers["content-range"] == f"bytes 2040-2047/{len(AUDIO_BYTES)}"
        assert response.content == AUDIO_BYTES[2040:]

    async def test_stream_malformed_range_sends_whole_file(self, client: AsyncClient) -> None:
        response = await client.get(
            "/stream/alpha-bravo-charlie-delta", headers={"Range": "items=0-5"}
        )
        assert response.status_code == 200
        assert response.content == AUDIO_BYTES

    async def test_stream_unknown_track(self, client: AsyncClient) -> None:
        assert (await client.get("/stream/no-such-track-here")).status_code == 404

    async def test_stream_missing_file(self, client: AsyncClient) -> None:
        assert (await client.get("/stream/india-juliet-kilo-lima")).status_code == 404


class TestParseRangeHeader:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("bytes=0-9", (0, 9)),
            ("bytes=90-", (90, 99)),
            ("bytes=-10", (90, 99)),
            ("bytes=-500", (0, 99)),
            ("bytes=50-500", (50, 99)),
            ("bytes=0-0, 5-9", (0, 0)),
            ("bytes=-0", None),
            ("bytes=100-", None),
            ("bytes=200-300", None),
        ],
    )
    def test_resolves_against_file_size(
        self, header: str, expected: tuple[int, int] | None
    ) -> None:
        assert _parse_range_header(header, 100) == expected

    @pytest.mark.parametrize("header", ["items=0-5", "bytes=abc", "bytes=9-3", "bytes=-", "0-5"])
    def test_malformed(self, header: str) -> None:
        with pytest.raises(ValueError):
            _parse_range_header(header, 100)


# =============================================================================
# Cover art
# =============================================================================


class TestCover:
    async def test_cover_found(self, client: AsyncClient) -> None:
        response = await client.get("/cover/alpha-bravo-charlie-delta")
        assert response.status_code == 200
        data_url = response.json()["image_base64"]
        prefix = "data:image/jpeg;base64,"
        assert data_url.startswith(prefix)
        assert base64.b64decode(data_url[len(prefix) :]) == COVER_BYTES
        assert response.headers["etag"]

    async def test_cover_not_modified(self, client: AsyncClient) -> None:
        first = await client.get("/cover/alpha-bravo-charlie-delta")
        second = await client.get(
            "/cover/alpha-bravo-charlie-delta",
            headers={"If-None-Match": first.headers["etag"]},
        )
        assert second.status_code == 304

    async def test_cover_missing_image(self, client: AsyncClient) -> None:
        assert (await client.get("/cover/india-juliet-kilo-lima")).status_code == 404

    async def test_cover_unknown_track(self, client: AsyncClient) -> None:
        assert (await client.get("/cover/no-such-track-here")).status_code == 404

    async def test_custom_candidates(self, db: LibraryDb, tmp_path: Path) -> None:
        server = WebServer(db, ServerSettings(cover_candidates=("folder.png",)))
        transport = ASGITransport(app=server.app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/cover/alpha-bravo-charlie-delta")
        assert response.status_code == 404


# =============================================================================
# Server wiring
# =============================================================================


class TestServerConfig:
    async def test_host_and_port_come_from_settings(self, db: LibraryDb) -> None:
        server = WebServer(db, ServerSettings(host="127.0.0.1", port=9123))
        assert server.host == "127.0.0.1"
        assert server.port == 9123
        uvicorn_server = server._make_server(server.host, server.port)
        assert uvicorn_server.config.host == "127.0.0.1"
        assert uvicorn_server.config.port == 9123

    def test_flags_override_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MUSIC_DB_PATH", "/env/lib.sqlite")
        monkeypatch.setenv("PORT", "9001")
        _, settings = parse_args([])
        assert settings.db_path == "/env/lib.sqlite"
        assert settings.port == 9001

        _, settings = parse_args(["--db", "cli.sqlite", "--port", "9002", "--host", "::1"])
        assert settings.db_path == "cli.sqlite"
        assert settings.port == 9002
        assert settings.host == "::1"

    def test_port_out_of_range(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PORT", raising=False)
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["--port", "70000"])
        assert exc_info.value.code == 2
