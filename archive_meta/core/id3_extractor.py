"""ID3 extraction stage -- fetch a file's prefix and parse its tag."""

from __future__ import annotations

from archive_meta.core.id3_parser import parse_id3
from archive_meta.core.prefix_fetcher import PrefixFetcher
from archive_meta.models.extracted_metadata import ExtractedMetadata
from archive_meta.models.result import Err, FailureKind, Ok, Result
from archive_meta.utils.logger import get_logger

logger = get_logger("core.id3_extractor")


class ID3Extractor:
    """Combines the bounded fetcher and the ID3v2 parser behind one
    result-returning call.

    ``Err`` means the bytes never arrived. ``Ok`` always carries metadata,
    which may be empty (``source=FALLBACK``) when the file has no usable tag.
    """

    def __init__(self, fetcher: PrefixFetcher | None = None) -> None:
        self._fetcher = fetcher or PrefixFetcher()

    def extract(self, url: str) -> Result[ExtractedMetadata]:
        data = self._fetcher.fetch_prefix(url)
        if data is None:
            return Err(FailureKind.TRANSPORT, f"no data fetched from {url}")

        metadata = parse_id3(data)
        if metadata.has_identity:
            logger.debug(
                "ID3 tag for %s: %s - %s", url, metadata.artist, metadata.title,
            )
        else:
            logger.debug("No usable ID3 tag in %d bytes from %s", len(data), url)
        return Ok(metadata)

    def close(self) -> None:
        self._fetcher.close()
