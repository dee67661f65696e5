"""Archive Meta -- ID3 metadata extraction and normalization for archived MP3 collections."""

from archive_meta.utils.constants import APP_VERSION

__version__ = APP_VERSION
