"""Data models for Archive Meta."""

from archive_meta.models.config import AppConfig
from archive_meta.models.extracted_metadata import ExtractedMetadata, TagFrame, TagHeader
from archive_meta.models.metadata_source import MetadataSource
from archive_meta.models.result import Err, FailureKind, Ok, Result
from archive_meta.models.track import ProcessedTrackRecord, TrackDescriptor

__all__ = [
    "AppConfig",
    "Err",
    "ExtractedMetadata",
    "FailureKind",
    "MetadataSource",
    "Ok",
    "ProcessedTrackRecord",
    "Result",
    "TagFrame",
    "TagHeader",
    "TrackDescriptor",
]
