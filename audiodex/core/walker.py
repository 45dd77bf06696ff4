from __future__ import annotations

import asyncio
import logging
import os
import stat
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass
from pathlib import Path

from audiodex.core import WalkError

logger = logging.getLogger(__name__)


DEFAULT_AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".mp3",
        ".flac",
        ".wav",
        ".m4a",
        ".ogg",
        ".aac",
        ".wma",
        ".aiff",
        ".aif",
    }
)

DEFAULT_LOSSLESS_EXTENSIONS: frozenset[str] = frozenset({".flac", ".wav", ".aiff", ".aif"})


@dataclass(frozen=True, slots=True)
class WalkConfig:
    """
    Configuration for walking a music folder.

    Only the extension decides whether a file is a candidate; contents are
    looked at later, by the extractor.
    """

    root: Path
    extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS
    follow_symlinks: bool = False


def is_audio_file(path: Path | str, extensions: frozenset[str] = DEFAULT_AUDIO_EXTENSIONS) -> bool:
    return Path(path).suffix.lower() in extensions


def is_lossless(
    path: Path | str, lossless_extensions: frozenset[str] = DEFAULT_LOSSLESS_EXTENSIONS
) -> bool:
    """Classify a file as lossless purely by its extension."""
    return Path(path).suffix.lower() in lossless_extensions


def _check_root(root: Path) -> None:
    try:
        if not root.exists():
            raise WalkError(f"music folder does not exist: {root}")
        if not root.is_dir():
            raise WalkError(f"music folder is not a directory: {root}")
    except OSError as e:
        raise WalkError(f"cannot access music folder {root}: {e}") from e


def walk_audio_files(config: WalkConfig) -> Iterator[Path]:
    """
    Lazily yield audio file paths under `config.root`.

    Entries are visited depth-first, sorted by name within a directory. Any
    OSError while listing a directory or inspecting an entry aborts the walk
    with WalkError; unreadable parts of the tree are never skipped silently.

    Symlinks to files are yielded like files (a broken one aborts the walk).
    Symlinked directories are only descended when `follow_symlinks` is set.
    """
    _check_root(config.root)

    stack: list[Path] = [config.root]
    while stack:
        directory = stack.pop()
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise WalkError(f"cannot list directory {directory}: {e}") from e

        subdirs: list[Path] = []
        for entry in entries:
            try:
                if entry.is_symlink():
                    # Follow the link so a broken one surfaces as an error.
                    mode = os.stat(entry.path).st_mode
                    if stat.S_ISDIR(mode):
                        if config.follow_symlinks:
                            subdirs.append(Path(entry.path))
                        else:
                            logger.debug("Not following symlinked directory %s", entry.path)
                        continue
                    if not stat.S_ISREG(mode):
                        continue
                elif entry.is_dir(follow_symlinks=False):
                    subdirs.append(Path(entry.path))
                    continue
                elif not entry.is_file(follow_symlinks=False):
                    continue
            except OSError as e:
                raise WalkError(f"cannot inspect {entry.path}: {e}") from e

            if is_audio_file(entry.name, config.extensions):
                yield Path(entry.path)

        # Reverse so the stack pops subdirectories in name order.
        stack.extend(reversed(subdirs))


async def iter_audio_files(config: WalkConfig) -> AsyncIterator[Path]:
    """
    Asynchronously yield audio file paths under `config.root`.

    Each step of the underlying generator runs in a thread so a slow
    filesystem never blocks the event loop. Paths are pulled one at a time,
    so a consumer that stops pulling also stops the traversal.
    """
    walker = walk_audio_files(config)
    while True:
        path = await asyncio.to_thread(next, walker, None)
        if path is None:
            return
        yield path
