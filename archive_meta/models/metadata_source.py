"""Provenance of a track's final artist/title values."""

from enum import Enum


class MetadataSource(Enum):
    """Where a processed track's metadata came from.

    The string values are what gets persisted in ``metadata_source``.
    """

    ID3 = "id3"
    FILENAME = "filename"
    FALLBACK = "fallback"
