"""
The indexing pipeline.

One producer walks the music folder and feeds a bounded queue; a fixed pool of
worker tasks drains it. Each worker takes one path at a time through

    Queued -> Extracting -> Resolving -> Inserting -> Committed | Duplicate | Failed

Tag extraction is blocking, so it runs on a thread pool sized to the worker
count; everything touching the store goes through `LibraryDb`, which serializes
writes. A failure on one file is logged and recorded, never raised: the worker
moves on to the next path. The run finishes once the queue has been closed and
every worker has drained it.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from audiodex.config import IndexerSettings
from audiodex.core import WalkError
from audiodex.core.db.models import InsertOutcome, NewTrack
from audiodex.core.extractor import MetadataExtractor, MutagenExtractor, apply_fallbacks
from audiodex.core.identifier import generate_identifier
from audiodex.core.library_db import LibraryDb
from audiodex.core.walker import WalkConfig, is_lossless, iter_audio_files

logger = logging.getLogger(__name__)


class FileStage(Enum):
    QUEUED = "queued"
    EXTRACTING = "extracting"
    RESOLVING = "resolving"
    INSERTING = "inserting"


class FileOutcome(Enum):
    COMMITTED = "committed"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class FileResult:
    """
    Terminal state of one file.

    `stage` and `reason` are set for failures only; `identifier` is set once
    it has been computed.
    """

    path: Path
    outcome: FileOutcome
    identifier: str | None = None
    stage: FileStage | None = None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class RunReport:
    """Summary of one run over a music folder."""

    root: Path
    queued: int
    results: tuple[FileResult, ...]
    fatal_error: WalkError | None = None
    elapsed_seconds: float = 0.0

    def _count(self, outcome: FileOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def committed(self) -> int:
        return self._count(FileOutcome.COMMITTED)

    @property
    def duplicates(self) -> int:
        return self._count(FileOutcome.DUPLICATE)

    @property
    def failed(self) -> int:
        return self._count(FileOutcome.FAILED)

    @property
    def failures(self) -> tuple[FileResult, ...]:
        return tuple(r for r in self.results if r.outcome is FileOutcome.FAILED)

    @property
    def ok(self) -> bool:
        """True when the whole tree was walked; per-file failures do not count."""
        return self.fatal_error is None


class ProgressCounter:
    """Files seen so far. Guarded by its own lock, independent of the store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def reset(self) -> None:
        with self._lock:
            self._value = 0

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


# Closes the queue; one per worker.
_CLOSED = None


class Indexer:
    """
    Index a music folder into a `LibraryDb`.

    Dependencies are injected:
    - `db`: an open LibraryDb with its schema ensured
    - `extractor`: any MetadataExtractor (defaults to mutagen)
    """

    def __init__(
        self,
        *,
        db: LibraryDb,
        extractor: MetadataExtractor | None = None,
        workers: int | None = None,
        settings: IndexerSettings | None = None,
    ) -> None:
        self._settings = settings or IndexerSettings()
        workers = self._settings.workers if workers is None else workers
        if isinstance(workers, bool) or not isinstance(workers, int) or workers <= 0:
            raise ValueError(f"workers must be a positive integer, got {workers!r}")

        self._db = db
        self._extractor: MetadataExtractor = extractor or MutagenExtractor()
        self._workers = workers
        self._progress = ProgressCounter()
        self._running = False

    @property
    def workers(self) -> int:
        return self._workers

    @property
    def queue_capacity(self) -> int:
        return self._workers * self._settings.queue_factor

    @property
    def progress(self) -> ProgressCounter:
        return self._progress

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self, root: Path | str) -> RunReport:
        """
        Walk `root` and index every audio file under it.

        A traversal error stops the walk and is returned as
        `RunReport.fatal_error`; paths already queued are still processed.
        Per-file failures are returned in `RunReport.failures`.
        """
        if self._running:
            raise RuntimeError("An indexing run is already in progress.")
        self._running = True
        try:
            return await self._run(Path(root).resolve())
        finally:
            self._running = False

    async def _run(self, root: Path) -> RunReport:
        started = time.monotonic()
        self._progress.reset()

        queue: asyncio.Queue[Path | None] = asyncio.Queue(maxsize=self.queue_capacity)
        results: list[FileResult] = []
        executor = ThreadPoolExecutor(
            max_workers=self._workers, thread_name_prefix="audiodex-extract"
        )

        logger.info(
            "Starting indexing of music folder: %s with %d workers", root, self._workers
        )

        workers = [
            asyncio.create_task(self._worker(queue, results, executor), name=f"indexer-{n}")
            for n in range(self._workers)
        ]

        fatal: WalkError | None = None
        try:
            try:
                await self._produce(root, queue)
            except WalkError as e:
                fatal = e
                logger.error("Walking %s failed: %s", root, e)

            for _ in workers:
                await queue.put(_CLOSED)
            await asyncio.gather(*workers)
        except BaseException:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        report = RunReport(
            root=root,
            queued=self._progress.value,
            results=tuple(sorted(results, key=lambda r: str(r.path))),
            fatal_error=fatal,
            elapsed_seconds=time.monotonic() - started,
        )
        logger.info(
            "Indexed %s: %d queued, %d committed, %d duplicates, %d failed (%.1fs)",
            root,
            report.queued,
            report.committed,
            report.duplicates,
            report.failed,
            report.elapsed_seconds,
        )
        return report

    async def _produce(self, root: Path, queue: asyncio.Queue[Path | None]) -> None:
        config = WalkConfig(
            root=root,
            extensions=self._settings.audio_extensions,
            follow_symlinks=self._settings.follow_symlinks,
        )
        async for path in iter_audio_files(config):
            count = self._progress.increment()
            logger.debug("Queueing file %d: %s", count, path)
            # Blocks while the queue is full.
            await queue.put(path)

    async def _worker(
        self,
        queue: asyncio.Queue[Path | None],
        results: list[FileResult],
        executor: ThreadPoolExecutor,
    ) -> None:
        while True:
            path = await queue.get()
            try:
                if path is _CLOSED:
                    return
                results.append(await self.process_file(path, executor=executor))
            finally:
                queue.task_done()

    async def process_file(
        self, path: Path, *, executor: ThreadPoolExecutor | None = None
    ) -> FileResult:
        """
        Take one file from extraction to insertion.

        Never raises for a per-file problem; the returned FileResult carries the
        outcome. `executor` runs the blocking extraction (default: the loop's).
        """
        settings = self._settings
        stage = FileStage.EXTRACTING
        identifier: str | None = None
        try:
            loop = asyncio.get_running_loop()
            tags = await loop.run_in_executor(executor, self._extractor.extract, path)
            resolved = apply_fallbacks(
                tags,
                path,
                unknown_artist=settings.unknown_artist,
                unknown_album=settings.unknown_album,
            )

            stage = FileStage.RESOLVING
            identifier = generate_identifier(
                resolved.title,
                resolved.artist,
                resolved.album,
                str(path),
                words=settings.identifier_words,
            )
            artist_id = await self._db.get_or_insert_artist(resolved.artist)
            album_id = await self._db.get_or_insert_album(resolved.album, artist_id, resolved.year)
            genre_id: int | None = None
            if resolved.genre:
                genre_id = await self._db.get_or_insert_genre(resolved.genre)

            stage = FileStage.INSERTING
            outcome = await self._db.insert_track(
                NewTrack(
                    identifier=identifier,
                    file_path=str(path),
                    title=resolved.title,
                    lossless=is_lossless(path, settings.lossless_extensions),
                    artist_id=artist_id,
                    album_id=album_id,
                    genre_id=genre_id,
                    track_number=resolved.track_number,
                    disc_number=resolved.disc_number,
                    year=resolved.year,
                )
            )
        except Exception as e:  # noqa: BLE001 - one bad file must not stop the run
            reason = f"{type(e).__name__}: {e}"
            logger.warning("Error processing %s while %s: %s", path, stage.value, reason)
            return FileResult(
                path=path,
                outcome=FileOutcome.FAILED,
                identifier=identifier,
                stage=stage,
                reason=reason,
            )

        if outcome is InsertOutcome.DUPLICATE:
            logger.info("Skipping existing audio file: %s (identifier: %s)", path, identifier)
            return FileResult(path=path, outcome=FileOutcome.DUPLICATE, identifier=identifier)

        logger.debug("Indexed %s as %s", path, identifier)
        return FileResult(path=path, outcome=FileOutcome.COMMITTED, identifier=identifier)
