"""Batch processor -- runs the metadata pipeline over a list of scraped tracks
and commits the results in chunks."""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Iterable

from archive_meta.core.artist_normalizer import ArtistNormalizer
from archive_meta.core.id3_extractor import ID3Extractor
from archive_meta.core.title_formatter import format_track_title
from archive_meta.db.repositories import TrackStore
from archive_meta.models.metadata_source import MetadataSource
from archive_meta.models.result import Err
from archive_meta.models.track import ProcessedTrackRecord, TrackDescriptor
from archive_meta.utils.constants import (
    DEFAULT_MAX_WORKERS,
    DEFAULT_PERSIST_BATCH_SIZE,
    FILENAME_CONFIDENCE,
    UNKNOWN_ARTIST,
)
from archive_meta.utils.logger import get_logger

logger = get_logger("core.batch_processor")


@dataclass(frozen=True)
class BatchOptions:
    """Which pipeline stages run for each track."""

    extract_id3: bool = True
    format_titles: bool = True
    normalize_artists: bool = True


@dataclass
class BatchStats:
    """Provenance counts for a processed batch."""

    total: int = 0
    from_id3: int = 0
    from_filename: int = 0
    fallback: int = 0

    @classmethod
    def from_records(cls, records: Iterable[ProcessedTrackRecord]) -> BatchStats:
        stats = cls()
        for record in records:
            stats.total += 1
            if record.metadata_source is MetadataSource.ID3:
                stats.from_id3 += 1
            elif record.metadata_source is MetadataSource.FILENAME:
                stats.from_filename += 1
            else:
                stats.fallback += 1
        return stats


@dataclass
class PersistResult:
    """Outcome of a chunked commit.

    ``saved`` counts only records in chunks that committed; each failed
    chunk contributes one labelled entry to ``errors``. ``skipped`` counts
    records that lacked an id, url or filename and were never sent.
    """

    saved: int = 0
    errors: list[str] = field(default_factory=list)
    skipped: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class BatchResult:
    """Complete result of :meth:`BatchProcessor.run`."""

    records: list[ProcessedTrackRecord] = field(default_factory=list)
    persist: PersistResult = field(default_factory=PersistResult)
    stats: BatchStats = field(default_factory=BatchStats)


# Callback type: (completed_count, total, record)
ProgressCallback = Callable[[int, int, ProcessedTrackRecord], None]


class BatchProcessor:
    """Orchestrates metadata extraction for a batch of tracks.

    Pipeline per track:
    1. Start from the filename-derived artist/title (source ``filename``,
       confidence 0.7).
    2. ID3: fetch the file prefix and parse its tag; a decoded artist or
       title overrides the filename guess (source ``id3``, 0.95).
    3. Normalize the artist to its canonical form; confidence becomes the
       max of the current value and the normalizer's.
    4. Format the display title as ``[artist - title] / filename``.

    A failure anywhere in a track's pipeline yields a ``fallback`` record
    with the input fields untouched; the rest of the batch carries on.
    """

    def __init__(
        self,
        extractor: ID3Extractor | None = None,
        normalizer: ArtistNormalizer | None = None,
        store: TrackStore | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        clear_cache_after_run: bool = True,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            extractor: ID3 extraction stage (a default one is created if None).
            normalizer: Artist normalizer; owns the artist cache for the run.
            store: Upsert-by-id persistence collaborator for :meth:`persist`.
            max_workers: Tracks processed concurrently. 1 keeps the
                pipeline strictly sequential.
            clear_cache_after_run: Reset the artist cache after :meth:`run`.
            progress_callback: Optional callback after each processed track.
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._extractor = extractor or ID3Extractor()
        self._normalizer = normalizer or ArtistNormalizer()
        self._store = store
        self._max_workers = max_workers
        self._clear_cache_after_run = clear_cache_after_run
        self._progress_callback = progress_callback

    @property
    def normalizer(self) -> ArtistNormalizer:
        return self._normalizer

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_batch(
        self,
        tracks: Iterable[TrackDescriptor | dict],
        options: BatchOptions | None = None,
    ) -> list[ProcessedTrackRecord]:
        """Run the pipeline over *tracks*.

        Args:
            tracks: Descriptors, or raw scraper dicts.
            options: Stage switches (all stages on by default).

        Returns:
            One record per input track, in input order. A dict that is not
            a usable descriptor gets a ``fallback`` record.
        """
        options = options or BatchOptions()
        items = list(tracks)
        total = len(items)
        logger.info(
            "Processing %d tracks (id3=%s, normalize=%s, format=%s, workers=%d)",
            total, options.extract_id3, options.normalize_artists,
            options.format_titles, self._max_workers,
        )

        if self._max_workers == 1 or total <= 1:
            records = []
            for i, track in enumerate(items, start=1):
                record = self.process_track(track, options)
                records.append(record)
                self._report_progress(i, total, record)
        else:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                # map() yields in submission order
                records = []
                results = pool.map(lambda t: self.process_track(t, options), items)
                for i, record in enumerate(results, start=1):
                    records.append(record)
                    self._report_progress(i, total, record)

        stats = BatchStats.from_records(records)
        logger.info(
            "Processed %d tracks: %d from ID3, %d from filename, %d fallback",
            stats.total, stats.from_id3, stats.from_filename, stats.fallback,
        )
        return records

    def process_track(
        self,
        track: TrackDescriptor | dict,
        options: BatchOptions | None = None,
    ) -> ProcessedTrackRecord:
        """Run the pipeline for a single track. Never raises."""
        options = options or BatchOptions()
        if not isinstance(track, TrackDescriptor):
            try:
                track = TrackDescriptor.from_dict(track)
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping invalid track descriptor: %s", exc)
                return ProcessedTrackRecord.from_invalid(track)
        try:
            return self._run_pipeline(track, options)
        except Exception as exc:
            logger.warning("Error processing track %s: %s", track.filename, exc)
            return ProcessedTrackRecord.fallback(track)

    def _run_pipeline(
        self,
        track: TrackDescriptor,
        options: BatchOptions,
    ) -> ProcessedTrackRecord:
        artist = track.artist or UNKNOWN_ARTIST
        title = track.title or track.filename
        source = MetadataSource.FILENAME
        confidence = FILENAME_CONFIDENCE
        extras: dict[str, str] = {}

        if options.extract_id3:
            result = self._extractor.extract(track.url)
            if isinstance(result, Err):
                logger.warning("No tag data for %s (%s)", track.filename, result)
                return ProcessedTrackRecord.fallback(track)

            id3 = result.value
            if id3.has_identity:
                artist = id3.artist or artist
                title = id3.title or title
                source = id3.source
                confidence = id3.confidence
                extras = {
                    name: value
                    for name, value in (("album", id3.album), ("genre", id3.genre), ("year", id3.year))
                    if value
                }

        if options.normalize_artists:
            normalized = self._normalizer.normalize(artist)
            artist = normalized.name
            # Later stages only ever add certainty
            confidence = max(confidence, normalized.confidence)

        if options.format_titles:
            title = format_track_title(
                artist=artist,
                old_title=title,
                filename=track.filename,
                include_filename=True,
            )

        return ProcessedTrackRecord.from_track(
            track, source, confidence, artist=artist, title=title, **extras,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist(
        self,
        records: list[ProcessedTrackRecord],
        batch_size: int = DEFAULT_PERSIST_BATCH_SIZE,
    ) -> PersistResult:
        """Upsert *records* in chunks of *batch_size*.

        A failing chunk is recorded as ``"Batch <n>: <message>"`` (1-based)
        and the next chunk is attempted anyway. Records that cannot form a
        row are left out of the chunks and counted in ``skipped``.

        Raises:
            ValueError: If no store is configured or *batch_size* < 1.
        """
        if self._store is None:
            raise ValueError("No track store configured for persistence")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        storable = [r for r in records if r.is_storable]
        result = PersistResult(skipped=len(records) - len(storable))
        if result.skipped:
            logger.warning("Skipping %d record(s) without id, url or filename", result.skipped)

        records = storable
        total = len(records)
        chunks = math.ceil(total / batch_size)

        for index in range(chunks):
            chunk = records[index * batch_size:(index + 1) * batch_size]
            label = index + 1
            try:
                self._store.upsert_batch([r.as_dict() for r in chunk])
            except Exception as exc:
                message = str(exc) or type(exc).__name__
                result.errors.append(f"Batch {label}: {message}")
                logger.error("Batch %d/%d failed (%d tracks): %s", label, chunks, len(chunk), message)
                continue

            result.saved += len(chunk)
            logger.info("Saved batch %d/%d (%d/%d tracks)", label, chunks, result.saved, total)

        return result

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    def run(
        self,
        tracks: Iterable[TrackDescriptor | dict],
        options: BatchOptions | None = None,
        batch_size: int = DEFAULT_PERSIST_BATCH_SIZE,
    ) -> BatchResult:
        """Process and persist a batch, then reset the artist cache if
        configured to."""
        try:
            records = self.process_batch(tracks, options)
            persist_result = self.persist(records, batch_size)
        finally:
            if self._clear_cache_after_run:
                self.clear_cache()

        if persist_result.errors:
            logger.warning(
                "Run finished with %d failed batch(es); saved %d/%d tracks",
                len(persist_result.errors), persist_result.saved, len(records),
            )
        return BatchResult(
            records=records,
            persist=persist_result,
            stats=BatchStats.from_records(records),
        )

    def clear_cache(self) -> int:
        return self._normalizer.clear_cache()

    # --- Private helpers ---

    def _report_progress(self, done: int, total: int, record: ProcessedTrackRecord) -> None:
        if self._progress_callback:
            self._progress_callback(done, total, record)
