"""SQLite database holding processed tracks and extraction run history."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from archive_meta.utils.constants import DEFAULT_DB_FILENAME
from archive_meta.utils.logger import get_logger

logger = get_logger("db.database")

SCHEMA_VERSION = 1

CREATE_TABLES_SQL = """
-- Tracks: one row per archived MP3, upserted by id
CREATE TABLE IF NOT EXISTS tracks (
    id TEXT PRIMARY KEY,
    artist TEXT,
    title TEXT,
    album TEXT,
    year TEXT,
    genre TEXT,
    filename TEXT NOT NULL,
    url TEXT NOT NULL,
    source TEXT,
    collection TEXT,
    filesize TEXT,
    metadata_source TEXT NOT NULL DEFAULT 'filename',
    metadata_confidence REAL NOT NULL DEFAULT 0.0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Processing runs: one row per extraction batch
CREATE TABLE IF NOT EXISTS processing_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label TEXT NOT NULL,
    total_tracks INTEGER DEFAULT 0,
    saved INTEGER DEFAULT 0,
    failed_batches INTEGER DEFAULT 0,
    started_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    completed_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tracks_artist ON tracks(artist);
CREATE INDEX IF NOT EXISTS idx_tracks_collection ON tracks(collection);
CREATE INDEX IF NOT EXISTS idx_tracks_metadata_source ON tracks(metadata_source);
"""


class Database:
    """SQLite connection manager: opens the file, creates the schema, and
    closes cleanly as a context manager."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file, or ``":memory:"``.
                Defaults to ``archive_meta.db`` in the working directory.
        """
        self._db_path = str(db_path) if db_path else DEFAULT_DB_FILENAME
        self._connection: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open the connection (once) and ensure the schema exists."""
        if self._connection is not None:
            return self._connection

        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        # Worker threads only read results; all writes happen on the
        # persisting thread, one chunk transaction at a time.
        self._connection = sqlite3.connect(self._db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        if self._db_path != ":memory:":
            self._connection.execute("PRAGMA journal_mode=WAL")

        self._ensure_schema()
        logger.info("Database connected: %s", self._db_path)
        return self._connection

    def close(self) -> None:
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.debug("Database connection closed")

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the active connection, connecting if necessary."""
        if self._connection is None:
            return self.connect()
        return self._connection

    def _ensure_schema(self) -> None:
        conn = self._connection
        if conn is None:
            return

        conn.executescript(CREATE_TABLES_SQL)
        count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
        if count == 0:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            conn.commit()
            logger.info("Database schema created (version %d)", SCHEMA_VERSION)

    def __enter__(self) -> Database:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        self.close()
