"""Content storage for artifact blobs.

Blobs are written to `<root>/.<name>.partial` first and renamed to
`<root>/<task_id>_<epoch_ms>_<suffix><ext>` only after every byte is on disk,
so a published name always refers to a complete file.
"""

from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from .errors import ArtifactTooLargeError, StorageFailureError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    filename: str
    path: Path
    size_bytes: int


class ContentStore:
    """Owns the content-storage directory shared by all tasks."""

    def __init__(
        self,
        root: Path | str,
        *,
        max_bytes: int,
        chunk_size: int = 64 * 1024,
        extension: str = ".mp4",
    ) -> None:
        self.root = Path(root)
        self.max_bytes = max_bytes
        self.chunk_size = chunk_size
        self.extension = extension

    def migrate(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def blob_name(self, task_id: str, received_at: datetime) -> str:
        epoch_ms = int(received_at.timestamp() * 1000)
        # Random suffix keeps two deliveries within the same millisecond apart.
        return f"{task_id}_{epoch_ms}_{secrets.token_hex(4)}{self.extension}"

    def write(self, task_id: str, source: BinaryIO, received_at: datetime) -> StoredBlob:
        """Stream `source` into a new blob; raise before publishing on any failure."""
        filename = self.blob_name(task_id, received_at)
        target = self.root / filename
        partial = self.root / f".{filename}.partial"
        total = 0
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with partial.open("wb") as buffer:
                while True:
                    chunk = source.read(self.chunk_size)
                    if not chunk:
                        break
                    total += len(chunk)
                    if total > self.max_bytes:
                        logger.warning(
                            "content event=rejected task_id=%s reason=too_large max_bytes=%s",
                            task_id,
                            self.max_bytes,
                        )
                        raise ArtifactTooLargeError(
                            f"Artifact exceeds the {self.max_bytes} byte limit"
                        )
                    buffer.write(chunk)
                buffer.flush()
                os.fsync(buffer.fileno())
            os.replace(partial, target)
        except ArtifactTooLargeError:
            partial.unlink(missing_ok=True)
            raise
        except OSError as exc:
            partial.unlink(missing_ok=True)
            logger.error("content event=write_failed task_id=%s error=%s", task_id, exc)
            raise StorageFailureError(f"Failed to store artifact for task {task_id}") from exc

        logger.info(
            "content event=stored task_id=%s filename=%s size_bytes=%s", task_id, filename, total
        )
        return StoredBlob(filename=filename, path=target, size_bytes=total)

    def discard(self, path: Path | str) -> None:
        """Remove a blob that was never published."""
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("content event=discard_failed path=%s error=%s", path, exc)

    def open(self, path: Path | str) -> tuple[BinaryIO, int]:
        """Open a stored blob for reading; returns the handle and its size.

        Raises FileNotFoundError when the blob is gone so callers can report
        the inconsistency.
        """
        handle = Path(path).open("rb")
        try:
            size = os.fstat(handle.fileno()).st_size
        except OSError:
            handle.close()
            raise
        return handle, size
