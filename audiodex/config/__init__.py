"""
Configuration management for audiodex.

Settings are read from TOML. The package ships `defaults.toml` next to this
module; operators can point the entry points at their own file with
`--config`. Keys missing from a file fall back to the code defaults below, so
a partial file is enough to override a single value.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from audiodex.core.artwork import DEFAULT_COVER_CANDIDATES
from audiodex.core.identifier import MAX_WORDS
from audiodex.core.walker import DEFAULT_AUDIO_EXTENSIONS, DEFAULT_LOSSLESS_EXTENSIONS

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent

DEFAULT_DB_PATH = "music_library.sqlite"


@dataclass(frozen=True, slots=True)
class IndexerSettings:
    """Settings for one indexing run."""

    db_path: str = DEFAULT_DB_PATH
    workers: int = 4
    queue_factor: int = 2
    identifier_words: int = 4
    unknown_artist: str = "Unknown Artist"
    unknown_album: str = "Unknown Album"
    follow_symlinks: bool = False
    audio_extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS
    lossless_extensions: frozenset[str] = DEFAULT_LOSSLESS_EXTENSIONS

    def __post_init__(self) -> None:
        if self.workers <= 0:
            raise ValueError(f"workers must be a positive integer, got {self.workers}")
        if self.queue_factor <= 0:
            raise ValueError(f"queue_factor must be a positive integer, got {self.queue_factor}")
        if not 0 < self.identifier_words <= MAX_WORDS:
            raise ValueError(
                f"identifier_words must be between 1 and {MAX_WORDS}, got {self.identifier_words}"
            )
        if not self.unknown_artist.strip() or not self.unknown_album.strip():
            raise ValueError("unknown_artist and unknown_album must not be blank")


@dataclass(frozen=True, slots=True)
class ServerSettings:
    """Settings for the read-only HTTP API."""

    host: str = "0.0.0.0"
    port: int = 8080
    db_path: str = DEFAULT_DB_PATH
    cover_candidates: tuple[str, ...] = DEFAULT_COVER_CANDIDATES


@dataclass(frozen=True, slots=True)
class Settings:
    indexer: IndexerSettings = field(default_factory=IndexerSettings)
    server: ServerSettings = field(default_factory=ServerSettings)


def _normalize_extensions(values: Any, *, key: str) -> frozenset[str]:
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise ValueError(f"{key} must be a list of strings")
    out: set[str] = set()
    for v in values:
        ext = v.strip().lower()
        if not ext:
            continue
        out.add(ext if ext.startswith(".") else f".{ext}")
    return frozenset(out)


def _parse_indexer(data: Mapping[str, Any], formats: Mapping[str, Any]) -> IndexerSettings:
    defaults = IndexerSettings()
    audio = defaults.audio_extensions
    lossless = defaults.lossless_extensions
    if "audio_extensions" in formats:
        audio = _normalize_extensions(formats["audio_extensions"], key="audio_extensions")
    if "lossless_extensions" in formats:
        lossless = _normalize_extensions(formats["lossless_extensions"], key="lossless_extensions")

    return IndexerSettings(
        db_path=str(data.get("db_path", defaults.db_path)),
        workers=int(data.get("workers", defaults.workers)),
        queue_factor=int(data.get("queue_factor", defaults.queue_factor)),
        identifier_words=int(data.get("identifier_words", defaults.identifier_words)),
        unknown_artist=str(data.get("unknown_artist", defaults.unknown_artist)),
        unknown_album=str(data.get("unknown_album", defaults.unknown_album)),
        follow_symlinks=bool(data.get("follow_symlinks", defaults.follow_symlinks)),
        audio_extensions=audio,
        lossless_extensions=lossless,
    )


def _parse_server(data: Mapping[str, Any], environ: Mapping[str, str]) -> ServerSettings:
    defaults = ServerSettings()
    candidates = data.get("cover_candidates", list(defaults.cover_candidates))
    if not isinstance(candidates, list) or not all(isinstance(c, str) for c in candidates):
        raise ValueError("cover_candidates must be a list of strings")

    db_path = environ.get("MUSIC_DB_PATH") or str(data.get("db_path", defaults.db_path))
    port_raw = environ.get("PORT") or data.get("port", defaults.port)
    try:
        port = int(port_raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"port must be an integer, got {port_raw!r}") from e

    return ServerSettings(
        host=str(data.get("host", defaults.host)),
        port=port,
        db_path=db_path,
        cover_candidates=tuple(candidates),
    )


def load_settings(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """
    Load settings from a TOML file.

    Args:
        config_path: Path to a TOML file. If None, uses the shipped defaults.toml.
        environ: Environment used for server overrides (MUSIC_DB_PATH, PORT).
            Defaults to os.environ.

    Returns:
        Loaded Settings instance.

    Raises:
        OSError: if the file cannot be read.
        ValueError: if the file is not valid TOML or holds invalid values.
    """
    if config_path is None:
        config_path = CONFIG_DIR / "defaults.toml"
    if environ is None:
        environ = os.environ

    logger.debug("Loading settings from %s", config_path)

    with config_path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"invalid TOML in {config_path}: {e}") from e

    return Settings(
        indexer=_parse_indexer(data.get("indexer", {}), data.get("formats", {})),
        server=_parse_server(data.get("server", {}), environ),
    )
