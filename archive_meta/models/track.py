"""Track models -- the scraper's input descriptor and the processed record."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, fields, replace

from archive_meta.models.metadata_source import MetadataSource
from archive_meta.utils.constants import FALLBACK_CONFIDENCE


def track_id_for_url(url: str) -> str:
    """Derive a stable track id from its URL.

    Used when the scraper did not assign an id, so re-processing the same
    file upserts the same row instead of inserting a duplicate.
    """
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]


@dataclass
class TrackDescriptor:
    """A track as discovered by the archive directory scraper.

    ``artist`` and ``title`` are filename-derived guesses; ``url`` must
    accept ranged GET requests.

    Attributes:
        id: Unique track id (the upsert key).
        artist: Filename-derived artist (may be empty).
        title: Filename-derived title (may be empty).
        filename: MP3 file name inside the archive item.
        url: Direct download URL.
        source: Where the track was scraped from (e.g. "archive.org").
        collection: Collection label (e.g. "A" for mp3_com_barge_A).
        album: Optional album guess.
        year: Optional year guess.
        genre: Optional genre guess.
        filesize: Optional human-readable size from the directory listing.
    """

    id: str
    artist: str
    title: str
    filename: str
    url: str
    source: str = ""
    collection: str = ""
    album: str | None = None
    year: str | None = None
    genre: str | None = None
    filesize: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> TrackDescriptor:
        """Create a descriptor from a raw scraper dict.

        Unknown keys are ignored. A missing id is derived from the URL.

        Raises:
            TypeError: If *data* is not a dict.
            ValueError: If ``url`` or ``filename`` is missing.
        """
        if not isinstance(data, dict):
            raise TypeError(f"Track descriptor must be a dict, got {type(data).__name__}")
        values = _known_values(data)

        url = values.get("url")
        filename = values.get("filename")
        if not url or not filename:
            raise ValueError(f"Track descriptor needs url and filename: {data!r}")

        values.setdefault("artist", "")
        values.setdefault("title", "")
        values["artist"] = values["artist"] or ""
        values["title"] = values["title"] or ""
        if not values.get("id"):
            values["id"] = track_id_for_url(url)
        else:
            values["id"] = str(values["id"])
        return cls(**values)

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _known_values(data: dict) -> dict:
    known = {f.name for f in fields(TrackDescriptor)}
    return {k: v for k, v in data.items() if k in known}


def _descriptor_values(track: TrackDescriptor) -> dict:
    return {f.name: getattr(track, f.name) for f in fields(TrackDescriptor)}


@dataclass
class ProcessedTrackRecord(TrackDescriptor):
    """A descriptor after the metadata pipeline ran over it.

    ``artist`` and ``title`` hold the pipeline's final values; the two
    ``metadata_*`` fields tell consumers how far to trust them.
    """

    metadata_source: MetadataSource = MetadataSource.FILENAME
    metadata_confidence: float = FALLBACK_CONFIDENCE

    @classmethod
    def fallback(cls, track: TrackDescriptor) -> ProcessedTrackRecord:
        """Record for a track whose pipeline failed: original fields intact."""
        return cls(
            **_descriptor_values(track),
            metadata_source=MetadataSource.FALLBACK,
            metadata_confidence=FALLBACK_CONFIDENCE,
        )

    @classmethod
    def from_invalid(cls, data: object) -> ProcessedTrackRecord:
        """Fallback record for scraper input that is not a usable descriptor.

        Whatever known fields are present are carried over. The id is
        derived from the URL when there is one, otherwise left empty, and
        such a record is not storable.
        """
        values = _known_values(data) if isinstance(data, dict) else {}
        url = str(values.get("url") or "")
        values.update(
            url=url,
            filename=str(values.get("filename") or ""),
            artist=values.get("artist") or "",
            title=values.get("title") or "",
        )
        if values.get("id"):
            values["id"] = str(values["id"])
        else:
            values["id"] = track_id_for_url(url) if url else ""
        return cls(
            **values,
            metadata_source=MetadataSource.FALLBACK,
            metadata_confidence=FALLBACK_CONFIDENCE,
        )

    @property
    def is_storable(self) -> bool:
        """True if the record has the id, url and filename a row needs."""
        return bool(self.id and self.url and self.filename)

    @classmethod
    def from_track(
        cls,
        track: TrackDescriptor,
        source: MetadataSource,
        confidence: float,
        **overrides: object,
    ) -> ProcessedTrackRecord:
        base = cls(**_descriptor_values(track), metadata_source=source, metadata_confidence=confidence)
        return replace(base, **overrides) if overrides else base

    def as_dict(self) -> dict:
        """Serialize for storage (``metadata_source`` as its string value)."""
        data = super().as_dict()
        data["metadata_source"] = self.metadata_source.value
        return data
