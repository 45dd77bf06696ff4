from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Protocol

import mutagen
from mutagen import File as mutagen_file

from audiodex.core import ExtractionError, ExtractionErrorKind

logger = logging.getLogger(__name__)

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


@dataclass(frozen=True, slots=True)
class TrackTags:
    """
    Raw tag fields as read from a file.

    Any field may be missing; extractors return None (or a blank string) rather
    than inventing values. Placeholders are the core's business, see
    `apply_fallbacks`.
    """

    title: str | None = None
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    track_number: int | None = None
    disc_number: int | None = None
    year: int | None = None


@dataclass(frozen=True, slots=True)
class ResolvedTags:
    """Tags after the fallback policy: title/artist/album are never empty."""

    title: str
    artist: str
    album: str
    genre: str | None
    track_number: int | None
    disc_number: int | None
    year: int | None


class MetadataExtractor(Protocol):
    """
    Capability that reads tags from an audio file.

    Implementations must be safe to call from several threads at once and must
    raise ExtractionError (never return partial garbage) when a file cannot be
    read or parsed.
    """

    def extract(self, path: Path) -> TrackTags: ...


def _clean_str(value: str | None) -> str | None:
    if value is None:
        return None
    s = value.strip()
    return s if s else None


def apply_fallbacks(
    tags: TrackTags,
    path: Path,
    *,
    unknown_artist: str = UNKNOWN_ARTIST,
    unknown_album: str = UNKNOWN_ALBUM,
) -> ResolvedTags:
    """
    Fill in what the extractor left blank.

    - title: the file's base name without its extension
    - artist/album: fixed placeholders
    - genre: left absent, no placeholder
    """
    return ResolvedTags(
        title=_clean_str(tags.title) or path.stem,
        artist=_clean_str(tags.artist) or unknown_artist,
        album=_clean_str(tags.album) or unknown_album,
        genre=_clean_str(tags.genre),
        track_number=tags.track_number,
        disc_number=tags.disc_number,
        year=tags.year,
    )


# ---------------------------------------------------------------------------
# mutagen backend
# ---------------------------------------------------------------------------


def _first_text(value: Any) -> str | None:
    """
    Mutagen returns different shapes depending on container/tag type:
    - ID3 frames
    - lists of strings
    - plain strings
    - objects with `.text`
    We normalize to a single string (first item if multiple).
    """
    if value is None:
        return None

    if isinstance(value, (list, tuple)):
        if not value:
            return None
        return _first_text(value[0])

    # MP4 track/disc numbers come as (number, total) tuples inside a list.
    if isinstance(value, int):
        return str(value)

    text = getattr(value, "text", None)
    if text is not None:
        return _first_text(text)

    if isinstance(value, bytes):
        return _clean_str(value.decode("utf-8", errors="replace"))

    return _clean_str(str(value))


def _parse_int_maybe(value: Any) -> int | None:
    """
    Parse things like:
    - "3"
    - "3/12"
    - ["3/12"]
    - [(3, 12)] (MP4 trkn/disk)
    """
    s = _first_text(value)
    if not s:
        return None

    if "/" in s:
        s = s.split("/", 1)[0].strip()

    try:
        return int(s)
    except ValueError:
        return None


def _parse_year_maybe(value: Any) -> int | None:
    """Accept "1999", "1999-01-01" or "1999/.." formats."""
    s = _first_text(value)
    if not s:
        return None

    m = re.search(r"\d{4}", s)
    if m is None:
        return None
    year = int(m.group(0))
    return year if 1000 <= year <= 3000 else None


def _parse_genre(value: Any) -> str | None:
    """
    Take the first value of a possibly multi-valued genre tag, as written.

    A track has at most one genre, so a single string like "Singer/Songwriter"
    or "Rock; Pop" is stored whole rather than cut at its separators.
    """
    return _first_text(value)


def _tags_get(tags: Any, keys: Iterable[str]) -> Any:
    if not tags:
        return None
    for k in keys:
        try:
            if k in tags:
                return tags[k]
        except (KeyError, ValueError, TypeError):
            continue
    return None


class MutagenExtractor:
    """
    Default extractor backed by mutagen.

    Tags only: mutagen parses container headers and tag blocks, no audio is
    decoded. Calls are synchronous; the pipeline runs them on worker threads.
    """

    def extract(self, path: Path) -> TrackTags:
        try:
            audio = mutagen_file(path)
        except OSError as e:
            raise ExtractionError(ExtractionErrorKind.UNREADABLE, path, str(e)) from e
        except mutagen.MutagenError as e:
            # mutagen re-raises IO errors as MutagenError; keep them apart.
            cause = e.__cause__ or e.__context__
            kind = (
                ExtractionErrorKind.UNREADABLE
                if isinstance(cause, OSError)
                else ExtractionErrorKind.UNPARSEABLE
            )
            raise ExtractionError(kind, path, f"{type(e).__name__}: {e}") from e

        if audio is None:
            raise ExtractionError(
                ExtractionErrorKind.UNPARSEABLE, path, "unsupported or unreadable audio file"
            )

        tags = getattr(audio, "tags", None)
        if not tags:
            logger.debug("No tags in %s", path)

        # Keys: ID3=TIT2, Vorbis=title, MP4=©nam
        title = _first_text(_tags_get(tags, ("TIT2", "title", "TITLE", "©nam")))
        # Keys: ID3=TPE1, Vorbis=artist, MP4=©ART
        artist = _first_text(_tags_get(tags, ("TPE1", "artist", "ARTIST", "©ART")))
        # Keys: ID3=TALB, Vorbis=album, MP4=©alb
        album = _first_text(_tags_get(tags, ("TALB", "album", "ALBUM", "©alb")))
        # Keys: ID3=TCON, Vorbis=genre, MP4=©gen
        genre = _parse_genre(_tags_get(tags, ("TCON", "genre", "GENRE", "©gen")))
        # Keys: ID3=TRCK, Vorbis=tracknumber, MP4=trkn
        track_number = _parse_int_maybe(
            _tags_get(tags, ("TRCK", "tracknumber", "TRACKNUMBER", "trkn"))
        )
        # Keys: ID3=TPOS, Vorbis=discnumber, MP4=disk
        disc_number = _parse_int_maybe(
            _tags_get(tags, ("TPOS", "discnumber", "DISCNUMBER", "disk"))
        )
        # Keys: ID3=TDRC/TYER, Vorbis=date, MP4=©day
        year = _parse_year_maybe(_tags_get(tags, ("TDRC", "TYER", "date", "DATE", "YEAR", "©day")))

        return TrackTags(
            title=title,
            artist=artist,
            album=album,
            genre=genre,
            track_number=track_number,
            disc_number=disc_number,
            year=year,
        )
