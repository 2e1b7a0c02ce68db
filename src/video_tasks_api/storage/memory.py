"""In-memory metadata backend for tests only."""

from __future__ import annotations

import threading

from video_tasks_api.storage.models import ArtifactMetadata


class InMemoryMetadataStore:
    """Simple in-memory implementation for unit tests."""

    def __init__(self) -> None:
        self._records: dict[str, ArtifactMetadata] = {}
        self._lock = threading.Lock()

    def migrate(self) -> None:
        return None

    def put(self, metadata: ArtifactMetadata) -> None:
        with self._lock:
            self._records[metadata.task_id] = metadata.model_copy(deep=True)

    def get(self, task_id: str) -> ArtifactMetadata | None:
        with self._lock:
            record = self._records.get(task_id)
        return record.model_copy(deep=True) if record else None
