"""JSON-file metadata backend: one document per task id.

Beginner terms:
- Atomic rename: `os.replace` swaps a fully written temp file into place, so a
  reader sees either the old record or the new one, never half a file.
- fsync: asks the OS to flush file contents to disk before the rename.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from video_tasks_api.app.errors import InvalidRequestError, StorageFailureError
from video_tasks_api.storage.models import ArtifactMetadata, is_valid_task_id

logger = logging.getLogger(__name__)


class FileMetadataStore:
    """Persist artifact metadata as `<root>/<task_id>.json` documents."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def migrate(self) -> None:
        """Create the metadata directory if it does not already exist."""
        self.root.mkdir(parents=True, exist_ok=True)

    def put(self, metadata: ArtifactMetadata) -> None:
        """Write (or overwrite) the record for `metadata.task_id`."""
        target = self._path_for(metadata.task_id)
        if target is None:
            raise InvalidRequestError(f"Invalid task id: {metadata.task_id!r}")
        payload = metadata.model_dump_json(indent=2)
        temp_name: str | None = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            # Temp file lives in the same directory so the rename stays on one filesystem.
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{metadata.task_id}.", suffix=".tmp", dir=self.root
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_name, target)
            temp_name = None
        except OSError as exc:
            raise StorageFailureError(
                f"Failed to write metadata for task {metadata.task_id}"
            ) from exc
        finally:
            if temp_name is not None:
                Path(temp_name).unlink(missing_ok=True)

    def get(self, task_id: str) -> ArtifactMetadata | None:
        """Read one record; `None` when no callback has been stored for the id."""
        path = self._path_for(task_id)
        if path is None:
            return None
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageFailureError(f"Failed to read metadata for task {task_id}") from exc
        try:
            return ArtifactMetadata.model_validate_json(raw)
        except ValidationError as exc:
            logger.error("metadata event=corrupt task_id=%s path=%s", task_id, path)
            raise StorageFailureError(f"Metadata for task {task_id} is unreadable") from exc

    def _path_for(self, task_id: str) -> Path | None:
        if not is_valid_task_id(task_id):
            return None
        return self.root / f"{task_id}.json"
