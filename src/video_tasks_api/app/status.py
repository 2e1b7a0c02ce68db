"""Read-only status projection over the registry and the metadata store."""

from __future__ import annotations

from video_tasks_api.storage.base import MetadataStore

from .errors import NotFoundError
from .models import VideoStatus
from .registry import TaskRegistry


def video_status(task_id: str, *, registry: TaskRegistry, metadata: MetadataStore) -> VideoStatus:
    """Stored callback metadata wins; otherwise fall back to the registry task."""
    record = metadata.get(task_id)
    if record is not None:
        return VideoStatus(
            task_id=record.task_id,
            status=record.status,
            duration=record.duration,
            download_url=record.download_url,
            received_at=record.received_at,
        )

    task = registry.get(task_id)
    if task is None:
        raise NotFoundError("Video not found")
    return VideoStatus(task_id=task.task_id, status=task.status, duration=task.duration)
