"""Typed configuration model for Archive Meta.

Built from the validated ``config/config.yaml`` dict; every value has an
explicit type and default.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path

from archive_meta.utils.constants import (
    DEFAULT_DB_FILENAME,
    DEFAULT_FETCH_RATE_LIMIT,
    DEFAULT_MAX_WORKERS,
    DEFAULT_PERSIST_BATCH_SIZE,
    DEFAULT_PREFIX_BYTES,
    FETCH_TIMEOUT_SECONDS,
)


@dataclass
class AppConfig:
    """Strongly-typed configuration for an extraction run.

    Attributes:
        fetch_max_bytes: Prefix size requested per MP3 (Range 0..=N).
        fetch_timeout_seconds: Wall-clock deadline for one prefix fetch.
        fetch_rate_limit: Minimum seconds between requests to the same host
            (0 disables spacing).
        extract_id3: Fetch and parse each file's ID3v2 tag.
        normalize_artists: Canonicalize artist names.
        format_titles: Rewrite titles as ``[artist - title] / filename``.
        persist_batch_size: Records per upsert chunk.
        max_workers: Tracks processed in parallel (1 = sequential).
        clear_cache_after_run: Reset the artist cache when a run finishes.
        db_path: SQLite database file.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_file: Path to log file (None = console only).
    """

    # --- Fetching ---
    fetch_max_bytes: int = DEFAULT_PREFIX_BYTES
    fetch_timeout_seconds: float = FETCH_TIMEOUT_SECONDS
    fetch_rate_limit: float = DEFAULT_FETCH_RATE_LIMIT

    # --- Pipeline stages ---
    extract_id3: bool = True
    normalize_artists: bool = True
    format_titles: bool = True

    # --- Batching ---
    persist_batch_size: int = DEFAULT_PERSIST_BATCH_SIZE
    max_workers: int = DEFAULT_MAX_WORKERS
    clear_cache_after_run: bool = True

    # --- Storage ---
    db_path: str = DEFAULT_DB_FILENAME

    # --- Logging ---
    log_level: str = "INFO"
    log_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> AppConfig:
        """Create an AppConfig from a raw dictionary (e.g., from YAML).

        Unknown keys are ignored so config files with future keys don't
        break older code.
        """
        known_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in known_fields and v is not None}
        return cls(**filtered)

    def to_dict(self) -> dict:
        return asdict(self)

    @property
    def db_path_resolved(self) -> Path:
        return Path(self.db_path).expanduser().resolve()
