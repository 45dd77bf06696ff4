"""
Internal DB subpackage for audiodex.

Splits the store into focused units (models, schema/migrations, read queries)
while keeping `LibraryDb` as the single public interface that the rest of the
codebase imports. External code should import `LibraryDb` from
`audiodex.core.library_db`.
"""

from __future__ import annotations

# Models / DTOs
from .models import AlbumRow, ArtistRow, GenreRow, InsertOutcome, NewTrack, TrackRow

# Schema / migrations
from .schema import SCHEMA_VERSION, ensure_schema, migrate

__all__ = [
    # models
    "ArtistRow",
    "AlbumRow",
    "GenreRow",
    "TrackRow",
    "NewTrack",
    "InsertOutcome",
    # schema
    "SCHEMA_VERSION",
    "ensure_schema",
    "migrate",
]
