"""Tests for BatchProcessor -- per-track pipeline, ordering, chunked persistence."""

from __future__ import annotations

import time
from unittest.mock import MagicMock

import pytest

from archive_meta.core.artist_normalizer import ArtistNormalizer
from archive_meta.core.batch_processor import BatchOptions, BatchProcessor, BatchStats
from archive_meta.models.extracted_metadata import ExtractedMetadata
from archive_meta.models.metadata_source import MetadataSource
from archive_meta.models.result import Err, FailureKind, Ok
from archive_meta.models.track import ProcessedTrackRecord, TrackDescriptor, track_id_for_url


def make_track(index: int = 1, artist: str = "daft punk", title: str = "one more time") -> dict:
    return {
        "id": f"track-{index}",
        "artist": artist,
        "title": title,
        "filename": f"track_{index:03d}.mp3",
        "url": f"https://archive.org/download/mp3_com_barge_A/track_{index:03d}.mp3",
        "source": "archive.org",
        "collection": "A",
    }


def make_records(count: int) -> list[ProcessedTrackRecord]:
    return [
        ProcessedTrackRecord.from_track(
            TrackDescriptor.from_dict(make_track(i)), MetadataSource.FILENAME, 0.8,
        )
        for i in range(count)
    ]


@pytest.fixture
def extractor() -> MagicMock:
    mock = MagicMock()
    mock.extract.return_value = Ok(ExtractedMetadata())
    return mock


@pytest.fixture
def store() -> MagicMock:
    return MagicMock()


@pytest.fixture
def processor(extractor: MagicMock, store: MagicMock) -> BatchProcessor:
    return BatchProcessor(extractor=extractor, normalizer=ArtistNormalizer(), store=store)


# ------------------------------------------------------------------
# Per-track pipeline
# ------------------------------------------------------------------


class TestProcessTrack:
    def test_fetch_failure_falls_back(self, processor: BatchProcessor, extractor: MagicMock):
        extractor.extract.return_value = Err(FailureKind.TRANSPORT, "timed out")
        track = make_track(artist="some artist", title="some title")

        [record] = processor.process_batch([track])

        assert record.metadata_source is MetadataSource.FALLBACK
        assert record.metadata_confidence == 0.0
        assert record.artist == "some artist"
        assert record.title == "some title"
        assert record.filename == track["filename"]
        assert record.url == track["url"]

    def test_id3_overrides_filename(self, processor: BatchProcessor, extractor: MagicMock):
        extractor.extract.return_value = Ok(ExtractedMetadata.from_fields(
            artist="Daft Punk", title="Daft Punk - One More Time", album="Discovery", year="2001",
        ))
        track = make_track(artist="unknown", title="track 1")
        track["filename"] = "dp.mp3"

        [record] = processor.process_batch([track])

        assert record.artist == "Daft Punk"
        assert record.title == "[Daft Punk - One More Time] / dp.mp3"
        assert record.metadata_source is MetadataSource.ID3
        assert record.metadata_confidence == 0.95
        assert record.album == "Discovery"
        assert record.year == "2001"
        extractor.extract.assert_called_once_with(track["url"])

    def test_id3_title_only_keeps_filename_artist(self, processor: BatchProcessor, extractor: MagicMock):
        extractor.extract.return_value = Ok(ExtractedMetadata.from_fields(title="Aerodynamic"))

        [record] = processor.process_batch([make_track(artist="daft punk")])

        assert record.artist == "Daft Punk"
        assert record.metadata_source is MetadataSource.ID3

    def test_untagged_file_uses_filename(self, processor: BatchProcessor):
        [record] = processor.process_batch([make_track()])

        assert record.artist == "Daft Punk"
        assert record.title == "[Daft Punk - one more time] / track_001.mp3"
        assert record.metadata_source is MetadataSource.FILENAME
        # Normalizer raises 0.7 to 0.8
        assert record.metadata_confidence == 0.8

    def test_confidence_never_lowered(self, processor: BatchProcessor, extractor: MagicMock):
        extractor.extract.return_value = Ok(ExtractedMetadata.from_fields(artist="Air"))

        [record] = processor.process_batch([make_track()])

        assert record.metadata_confidence == 0.95

    def test_stages_disabled(self, processor: BatchProcessor, extractor: MagicMock):
        options = BatchOptions(extract_id3=False, normalize_artists=False, format_titles=False)

        [record] = processor.process_batch([make_track()], options)

        extractor.extract.assert_not_called()
        assert record.artist == "daft punk"
        assert record.title == "one more time"
        assert record.metadata_source is MetadataSource.FILENAME
        assert record.metadata_confidence == 0.7

    def test_missing_artist_and_title(self, processor: BatchProcessor):
        options = BatchOptions(extract_id3=False)

        [record] = processor.process_batch([make_track(artist="", title="")], options)

        assert record.artist == "Unknown Artist"
        assert record.title == "[Unknown Artist - track_001.mp3] / track_001.mp3"
        assert record.metadata_confidence == 0.7

    def test_stage_exception_isolated(self, processor: BatchProcessor, extractor: MagicMock):
        extractor.extract.side_effect = [
            RuntimeError("parser blew up"),
            Ok(ExtractedMetadata.from_fields(artist="Air", title="Sexy Boy")),
        ]

        records = processor.process_batch([make_track(1), make_track(2)])

        assert records[0].metadata_source is MetadataSource.FALLBACK
        assert records[0].artist == "daft punk"
        assert records[1].metadata_source is MetadataSource.ID3
        assert records[1].artist == "Air"

    def test_accepts_descriptors(self, processor: BatchProcessor):
        track = TrackDescriptor.from_dict(make_track())
        [record] = processor.process_batch([track])
        assert record.id == "track-1"

    def test_invalid_descriptor_falls_back(self, processor: BatchProcessor, extractor: MagicMock):
        record = processor.process_track({"artist": "Air", "url": "https://x.org/a.mp3"})

        assert record.metadata_source is MetadataSource.FALLBACK
        assert record.metadata_confidence == 0.0
        assert record.artist == "Air"
        assert record.id == track_id_for_url("https://x.org/a.mp3")
        assert record.filename == ""
        assert not record.is_storable
        extractor.extract.assert_not_called()

    def test_non_dict_descriptor_falls_back(self, processor: BatchProcessor):
        record = processor.process_track(["not", "a", "track"])

        assert record.metadata_source is MetadataSource.FALLBACK
        assert record.id == ""
        assert not record.is_storable

    def test_invalid_descriptor_keeps_given_id(self, processor: BatchProcessor):
        record = processor.process_track({"id": 42, "filename": "a.mp3"})
        assert record.id == "42"
        assert record.url == ""


class TestProcessBatch:
    def test_one_record_per_track(self, processor: BatchProcessor):
        tracks = [make_track(i) for i in range(5)]
        records = processor.process_batch(tracks)
        assert [r.id for r in records] == [t["id"] for t in tracks]

    def test_order_preserved_with_workers(self, extractor: MagicMock):
        def slow_extract(url: str):
            # Earlier tracks finish last
            index = int(url.rsplit("_", 1)[1].split(".")[0])
            time.sleep(0.001 * (20 - index))
            return Ok(ExtractedMetadata.from_fields(artist=f"Artist {index}", title="Song"))

        extractor.extract.side_effect = slow_extract
        processor = BatchProcessor(extractor=extractor, max_workers=4)
        tracks = [make_track(i) for i in range(20)]

        records = processor.process_batch(tracks)

        assert [r.id for r in records] == [t["id"] for t in tracks]
        assert records[7].artist == "Artist 7"

    def test_progress_callback(self, extractor: MagicMock):
        callback = MagicMock()
        processor = BatchProcessor(extractor=extractor, progress_callback=callback)

        records = processor.process_batch([make_track(i) for i in range(3)])

        assert callback.call_count == 3
        callback.assert_called_with(3, 3, records[-1])

    def test_invalid_descriptor_does_not_stop_batch(self, processor: BatchProcessor):
        tracks = [make_track(1), {"artist": "Air", "title": "no url"}, make_track(3)]

        records = processor.process_batch(tracks)

        assert [r.metadata_source for r in records] == [
            MetadataSource.FILENAME, MetadataSource.FALLBACK, MetadataSource.FILENAME,
        ]
        assert records[1].title == "no url"

    def test_invalid_descriptor_with_workers(self, extractor: MagicMock):
        processor = BatchProcessor(extractor=extractor, max_workers=3)
        tracks = [make_track(1), {"filename": "x.mp3"}, make_track(3), 7]

        records = processor.process_batch(tracks)

        assert [r.id for r in records] == ["track-1", "", "track-3", ""]
        assert records[1].metadata_source is MetadataSource.FALLBACK

    def test_empty_batch(self, processor: BatchProcessor):
        assert processor.process_batch([]) == []

    def test_invalid_worker_count(self, extractor: MagicMock):
        with pytest.raises(ValueError):
            BatchProcessor(extractor=extractor, max_workers=0)

    def test_stats(self):
        records = make_records(3)
        records[0].metadata_source = MetadataSource.ID3
        records[2].metadata_source = MetadataSource.FALLBACK
        stats = BatchStats.from_records(records)
        assert (stats.total, stats.from_id3, stats.from_filename, stats.fallback) == (3, 1, 1, 1)


# ------------------------------------------------------------------
# Persistence
# ------------------------------------------------------------------


class TestPersist:
    def test_chunk_count(self, processor: BatchProcessor, store: MagicMock):
        result = processor.persist(make_records(2500), batch_size=1000)

        assert store.upsert_batch.call_count == 3
        sizes = [len(call.args[0]) for call in store.upsert_batch.call_args_list]
        assert sizes == [1000, 1000, 500]
        assert result.saved == 2500
        assert result.errors == []
        assert result.ok

    @pytest.mark.parametrize("count,size,calls", [(1, 1000, 1), (10, 3, 4), (9, 3, 3), (0, 5, 0)])
    def test_ceil_chunks(self, processor: BatchProcessor, store: MagicMock, count, size, calls):
        processor.persist(make_records(count), batch_size=size)
        assert store.upsert_batch.call_count == calls

    def test_failed_chunk_isolated(self, processor: BatchProcessor, store: MagicMock):
        store.upsert_batch.side_effect = [None, RuntimeError("disk full"), None]

        result = processor.persist(make_records(25), batch_size=10)

        assert store.upsert_batch.call_count == 3
        assert result.errors == ["Batch 2: disk full"]
        assert result.saved == 15
        assert not result.ok

    def test_rows_are_storage_dicts(self, processor: BatchProcessor, store: MagicMock):
        processor.persist(make_records(1))
        [row] = store.upsert_batch.call_args.args[0]
        assert row["id"] == "track-0"
        assert row["metadata_source"] == "filename"
        assert row["metadata_confidence"] == 0.8

    def test_unstorable_records_skipped(self, processor: BatchProcessor, store: MagicMock):
        records = make_records(3)
        records.insert(1, ProcessedTrackRecord.from_invalid({"artist": "no url or filename"}))

        result = processor.persist(records, batch_size=2)

        assert result.skipped == 1
        assert result.saved == 3
        assert result.ok
        sizes = [len(call.args[0]) for call in store.upsert_batch.call_args_list]
        assert sizes == [2, 1]
        sent = [row["id"] for call in store.upsert_batch.call_args_list for row in call.args[0]]
        assert sent == ["track-0", "track-1", "track-2"]

    def test_no_store(self, extractor: MagicMock):
        with pytest.raises(ValueError):
            BatchProcessor(extractor=extractor).persist(make_records(1))

    def test_invalid_batch_size(self, processor: BatchProcessor):
        with pytest.raises(ValueError):
            processor.persist(make_records(1), batch_size=0)


class TestRun:
    def test_run_processes_persists_and_clears_cache(self, processor: BatchProcessor, store: MagicMock):
        result = processor.run([make_track(i) for i in range(3)], batch_size=2)

        assert len(result.records) == 3
        assert result.persist.saved == 3
        assert store.upsert_batch.call_count == 2
        assert result.stats.from_filename == 3
        assert len(processor.normalizer.cache) == 0

    def test_cache_kept_when_configured(self, extractor: MagicMock, store: MagicMock):
        processor = BatchProcessor(extractor=extractor, store=store, clear_cache_after_run=False)

        processor.run([make_track()])

        assert len(processor.normalizer.cache) == 1
        assert processor.clear_cache() == 1
