"""Callback ingestion: accept a finished artifact from the external worker.

Order of operations for one callback:
1) validate the upload and form fields (nothing touches disk before this),
2) stream the blob into content storage and rename it into place,
3) publish ArtifactMetadata to the metadata store,
4) move the registry task (if registered) to its terminal state.
Steps 2-4 run under a per-task lock, so concurrent deliveries for the same id
are serialized while different ids proceed independently.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import BinaryIO

from video_tasks_api.storage.base import MetadataStore
from video_tasks_api.storage.models import ArtifactMetadata, is_valid_task_id

from .content import ContentStore
from .errors import (
    InvalidRequestError,
    StorageFailureError,
    TaskNotFoundError,
    UnsupportedMediaTypeError,
)
from .models import TaskStatus
from .registry import KeyedLock, TaskRegistry

logger = logging.getLogger(__name__)

FAILURE_STATUSES = frozenset({"failed", "failure", "error"})


@dataclass
class CallbackUpload:
    """One file part taken from the multipart callback request."""

    stream: BinaryIO
    media_type: str | None
    filename: str | None = None


def download_url_for(task_id: str) -> str:
    return f"/api/video/{task_id}"


def registry_status_for(declared: str) -> TaskStatus:
    return "failed" if declared.strip().lower() in FAILURE_STATUSES else "completed"


def parse_duration(raw: str | None) -> float | None:
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise InvalidRequestError(f"duration must be a number, got {raw!r}") from exc
    if not math.isfinite(value) or value < 0:
        raise InvalidRequestError(f"duration must be a non-negative number, got {raw!r}")
    return value


def normalize_media_type(raw: str | None) -> str:
    return (raw or "").split(";", 1)[0].strip().lower()


class CallbackIngestor:
    def __init__(
        self,
        *,
        content: ContentStore,
        metadata: MetadataStore,
        registry: TaskRegistry,
        media_type: str = "video/mp4",
    ) -> None:
        self.content = content
        self.metadata = metadata
        self.registry = registry
        self.media_type = normalize_media_type(media_type)
        self._locks = KeyedLock()

    def ingest(
        self,
        *,
        uploads: list[CallbackUpload],
        task_id: str | None,
        status: str | None = None,
        duration: str | None = None,
        message: str | None = None,
    ) -> ArtifactMetadata:
        if not uploads:
            raise InvalidRequestError("No video file received")
        if len(uploads) > 1:
            raise InvalidRequestError("Exactly one video file is expected per callback")
        upload = uploads[0]

        task_id = (task_id or "").strip()
        if not task_id:
            raise InvalidRequestError("task_id is required")
        if not is_valid_task_id(task_id):
            raise InvalidRequestError(f"Invalid task_id: {task_id!r}")

        declared_type = normalize_media_type(upload.media_type)
        if declared_type != self.media_type:
            logger.warning(
                "callback event=rejected task_id=%s reason=media_type media_type=%s",
                task_id,
                declared_type or "unknown",
            )
            raise UnsupportedMediaTypeError(
                f"Only {self.media_type} files are allowed, got {declared_type or 'unknown'}"
            )

        declared_status = (status or "").strip() or "completed"
        duration_s = parse_duration(duration)

        logger.info(
            "callback event=received task_id=%s status=%s duration=%s filename=%s",
            task_id,
            declared_status,
            duration_s,
            upload.filename,
        )

        with self._locks.hold(task_id):
            received_at = datetime.now(tz=UTC)
            blob = self.content.write(task_id, upload.stream, received_at)
            record = ArtifactMetadata(
                task_id=task_id,
                status=declared_status,
                duration=duration_s,
                message=message,
                stored_filename=blob.filename,
                stored_path=str(blob.path),
                size_bytes=blob.size_bytes,
                media_type=self.media_type,
                download_url=download_url_for(task_id),
                received_at=received_at,
            )
            try:
                self.metadata.put(record)
            except StorageFailureError:
                self.content.discard(blob.path)
                raise
            except OSError as exc:
                self.content.discard(blob.path)
                raise StorageFailureError(
                    f"Failed to write metadata for task {task_id}"
                ) from exc
            self._record_outcome(record)

        logger.info(
            "callback event=stored task_id=%s filename=%s size_bytes=%s",
            task_id,
            blob.filename,
            blob.size_bytes,
        )
        return record

    def _record_outcome(self, record: ArtifactMetadata) -> None:
        try:
            self.registry.transition(
                record.task_id,
                registry_status_for(record.status),
                video_url=record.download_url,
                duration=record.duration,
                message=record.message,
            )
        except TaskNotFoundError:
            # Workers may report tasks this process never registered (e.g. after a restart).
            logger.info("callback event=unregistered_task task_id=%s", record.task_id)
