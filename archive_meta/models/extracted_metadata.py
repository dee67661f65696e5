"""Models for ID3v2 tag structures and the metadata decoded from them."""

from __future__ import annotations

from dataclasses import dataclass, field

from archive_meta.models.metadata_source import MetadataSource
from archive_meta.utils.constants import FALLBACK_CONFIDENCE, ID3_CONFIDENCE


@dataclass(frozen=True)
class TagHeader:
    """The fixed 10-byte ID3v2 header.

    Attributes:
        version: Major version byte (3 for ID3v2.3, 4 for ID3v2.4).
        flags: Header flag byte (not interpreted).
        declared_size: Synchsafe-decoded size of the tag body, excluding the
            header itself. May claim more bytes than the buffer holds.
    """

    version: int
    flags: int
    declared_size: int

    def body_end(self, buffer_length: int) -> int:
        """Exclusive end offset of the tag body, clamped to the buffer."""
        return min(10 + self.declared_size, buffer_length)


@dataclass(frozen=True)
class TagFrame:
    """One frame inside the tag body."""

    frame_id: str
    size: int
    payload: bytes = field(repr=False)


@dataclass
class ExtractedMetadata:
    """Text fields decoded from an ID3v2 tag, with provenance.

    Attributes:
        artist: TPE1 value.
        title: TIT2 value.
        album: TALB value.
        genre: TCON value with numeric genre references resolved.
        year: Year prefix of TDRC/TYER.
        source: ``ID3`` when artist or title was decoded, else ``FALLBACK``.
        confidence: 0.95 for ``ID3``, 0.0 for ``FALLBACK``.
    """

    artist: str | None = None
    title: str | None = None
    album: str | None = None
    genre: str | None = None
    year: str | None = None
    source: MetadataSource = MetadataSource.FALLBACK
    confidence: float = FALLBACK_CONFIDENCE

    @classmethod
    def from_fields(
        cls,
        artist: str | None = None,
        title: str | None = None,
        album: str | None = None,
        genre: str | None = None,
        year: str | None = None,
    ) -> ExtractedMetadata:
        """Build metadata and assign provenance from what was decoded.

        Empty strings count as "not decoded".
        """
        found = cls(
            artist=artist or None,
            title=title or None,
            album=album or None,
            genre=genre or None,
            year=year or None,
        )
        if found.has_identity:
            found.source = MetadataSource.ID3
            found.confidence = ID3_CONFIDENCE
        return found

    @property
    def has_identity(self) -> bool:
        """True if the tag yielded an artist or a title."""
        return bool(self.artist or self.title)
