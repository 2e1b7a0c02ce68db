"""PostgreSQL metadata backend with automatic table migration.

Beginner terms:
- Migration: creating/updating database tables before normal reads/writes.
- Upsert: `INSERT ... ON CONFLICT DO UPDATE`, so a redelivered callback
  replaces the previous row for the same task id.
- Row factory: returns query rows as dict-like objects instead of tuples.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any

from video_tasks_api.app.errors import StorageFailureError
from video_tasks_api.storage.models import ArtifactMetadata


class PostgresMetadataStore:
    """Thread-safe PostgreSQL-backed storage for ArtifactMetadata records."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("database_url is required")
        self.database_url = database_url
        # Lock guards DB operations done through this storage instance.
        self._lock = threading.Lock()
        # Lazy import helper keeps error message clear if psycopg is missing.
        self._psycopg, self._dict_row = self._load_psycopg()

    def migrate(self) -> None:
        """Create the metadata table and index if they do not already exist."""
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS video_artifacts (
                    task_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    duration DOUBLE PRECISION,
                    message TEXT,
                    stored_filename TEXT NOT NULL,
                    stored_path TEXT NOT NULL,
                    size_bytes BIGINT NOT NULL,
                    media_type TEXT NOT NULL,
                    download_url TEXT NOT NULL,
                    received_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_video_artifacts_received_at
                ON video_artifacts(received_at DESC)
                """)
            conn.commit()

    def put(self, metadata: ArtifactMetadata) -> None:
        """Insert or replace the row for `metadata.task_id` in one transaction."""
        try:
            with self._lock, self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO video_artifacts (
                        task_id,
                        status,
                        duration,
                        message,
                        stored_filename,
                        stored_path,
                        size_bytes,
                        media_type,
                        download_url,
                        received_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (task_id) DO UPDATE SET
                        status = EXCLUDED.status,
                        duration = EXCLUDED.duration,
                        message = EXCLUDED.message,
                        stored_filename = EXCLUDED.stored_filename,
                        stored_path = EXCLUDED.stored_path,
                        size_bytes = EXCLUDED.size_bytes,
                        media_type = EXCLUDED.media_type,
                        download_url = EXCLUDED.download_url,
                        received_at = EXCLUDED.received_at
                    """,
                    (
                        metadata.task_id,
                        metadata.status,
                        metadata.duration,
                        metadata.message,
                        metadata.stored_filename,
                        metadata.stored_path,
                        metadata.size_bytes,
                        metadata.media_type,
                        metadata.download_url,
                        metadata.received_at,
                    ),
                )
                conn.commit()
        except self._psycopg.Error as exc:
            raise StorageFailureError(
                f"Failed to write metadata for task {metadata.task_id}"
            ) from exc

    def get(self, task_id: str) -> ArtifactMetadata | None:
        """Read one row by task id and convert it to ArtifactMetadata."""
        try:
            with self._lock, self._connect() as conn:
                row = conn.execute(
                    "SELECT * FROM video_artifacts WHERE task_id = %s",
                    (task_id,),
                ).fetchone()
        except self._psycopg.Error as exc:
            raise StorageFailureError(f"Failed to read metadata for task {task_id}") from exc
        if row is None:
            return None
        return self._row_to_metadata(row)

    def _connect(self) -> Any:
        """Open a psycopg connection that yields dict-like rows."""
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any]:
        """Import psycopg and helpers with a friendly install hint on failure."""
        try:
            import psycopg
            from psycopg.rows import dict_row
        except ImportError as exc:  # pragma: no cover - exercised only without dependency
            raise RuntimeError(
                "PostgreSQL backend requires psycopg. Install with: "
                'python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        """Parse datetime value from database driver output."""
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_metadata(cls, row: Any) -> ArtifactMetadata:
        return ArtifactMetadata(
            task_id=row["task_id"],
            status=row["status"],
            duration=row["duration"],
            message=row["message"],
            stored_filename=row["stored_filename"],
            stored_path=row["stored_path"],
            size_bytes=int(row["size_bytes"]),
            media_type=row["media_type"],
            download_url=row["download_url"],
            received_at=cls._parse_datetime(row["received_at"]),
        )
