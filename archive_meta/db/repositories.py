"""Data access layer -- upsert-by-id track storage and run history."""

from __future__ import annotations

import sqlite3
from typing import Any, Protocol

from archive_meta.utils.logger import get_logger

logger = get_logger("db.repositories")


class TrackStore(Protocol):
    """What the batch processor needs from persistence: one upsert call per
    chunk, conflicting on ``id``, raising on failure."""

    def upsert_batch(self, rows: list[dict[str, Any]]) -> None: ...


class TrackRepository:
    """SQLite implementation of :class:`TrackStore`."""

    # Whitelist of column names allowed into generated SQL
    _COLUMNS: tuple[str, ...] = (
        "id", "artist", "title", "album", "year", "genre",
        "filename", "url", "source", "collection", "filesize",
        "metadata_source", "metadata_confidence",
    )

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection

    def upsert_batch(self, rows: list[dict[str, Any]]) -> None:
        """Insert or update every row in a single transaction.

        Rows are matched on ``id``; re-processing a track overwrites it.
        Keys outside the column whitelist are ignored.

        Raises:
            ValueError: If a row has no id.
            sqlite3.Error: On any database error (the chunk is rolled back).
        """
        if not rows:
            return

        for row in rows:
            if not row.get("id"):
                raise ValueError(f"Track row without id: {row.get('filename')!r}")

        columns = ", ".join(self._COLUMNS)
        placeholders = ", ".join("?" for _ in self._COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in self._COLUMNS if c != "id")
        sql = (
            f"INSERT INTO tracks ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}, updated_at = CURRENT_TIMESTAMP"
        )
        values = [tuple(row.get(c) for c in self._COLUMNS) for row in rows]

        try:
            self._conn.executemany(sql, values)
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            logger.error("Upsert of %d tracks failed: %s", len(rows), e)
            raise

    def get_by_id(self, track_id: str) -> dict[str, Any] | None:
        cursor = self._conn.execute("SELECT * FROM tracks WHERE id = ?", (track_id,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM tracks").fetchone()[0]

    def count_by_source(self) -> dict[str, int]:
        """Track counts keyed by ``metadata_source`` value."""
        cursor = self._conn.execute(
            "SELECT metadata_source, COUNT(*) AS count FROM tracks GROUP BY metadata_source"
        )
        return {row["metadata_source"]: row["count"] for row in cursor.fetchall()}


class ProcessingRunRepository:
    """Records each extraction run so callers can report completion counts."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection

    def start_run(self, label: str, total_tracks: int) -> int:
        """Record the start of a run.

        Args:
            label: Human-readable run label (e.g. the input file name).
            total_tracks: Number of tracks in the run.

        Returns:
            Run ID.
        """
        cursor = self._conn.execute(
            "INSERT INTO processing_runs (label, total_tracks) VALUES (?, ?)",
            (label, total_tracks),
        )
        self._conn.commit()
        return cursor.lastrowid

    def complete_run(self, run_id: int, saved: int, failed_batches: int) -> None:
        self._conn.execute(
            """UPDATE processing_runs
               SET saved = ?, failed_batches = ?, completed_at = CURRENT_TIMESTAMP
               WHERE id = ?""",
            (saved, failed_batches, run_id),
        )
        self._conn.commit()

    def last_completed_at(self) -> str | None:
        """Timestamp of the most recent completed run, or None."""
        row = self._conn.execute(
            "SELECT MAX(completed_at) FROM processing_runs WHERE completed_at IS NOT NULL"
        ).fetchone()
        return row[0] if row else None

    def get_runs(self, limit: int = 20) -> list[dict[str, Any]]:
        cursor = self._conn.execute(
            "SELECT * FROM processing_runs ORDER BY id DESC LIMIT ?",
            (limit,),
        )
        return [dict(row) for row in cursor.fetchall()]
