"""Storage interface for per-task artifact metadata."""

from __future__ import annotations

from typing import Protocol

from video_tasks_api.storage.models import ArtifactMetadata


class MetadataStore(Protocol):
    def migrate(self) -> None: ...

    def put(self, metadata: ArtifactMetadata) -> None: ...

    def get(self, task_id: str) -> ArtifactMetadata | None: ...
