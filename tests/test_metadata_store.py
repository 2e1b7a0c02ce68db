from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from video_tasks_api.app.errors import InvalidRequestError, StorageFailureError
from video_tasks_api.storage import FileMetadataStore, InMemoryMetadataStore
from video_tasks_api.storage.models import ArtifactMetadata


def _metadata(task_id: str = "task-1", *, duration: float | None = 5.0) -> ArtifactMetadata:
    return ArtifactMetadata(
        task_id=task_id,
        status="completed",
        duration=duration,
        message="ok",
        stored_filename=f"{task_id}_1700000000000_abcd.mp4",
        stored_path=f"/srv/videos/{task_id}_1700000000000_abcd.mp4",
        size_bytes=123,
        media_type="video/mp4",
        download_url=f"/api/video/{task_id}",
        received_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC),
    )


def test_file_store_put_and_get(tmp_path: Path) -> None:
    store = FileMetadataStore(tmp_path / "metadata")
    store.put(_metadata())

    assert store.get("task-1") == _metadata()
    assert (tmp_path / "metadata" / "task-1.json").exists()


def test_file_store_overwrites_and_leaves_no_temp_files(tmp_path: Path) -> None:
    store = FileMetadataStore(tmp_path)
    store.put(_metadata(duration=1.0))
    store.put(_metadata(duration=2.0))

    assert store.get("task-1").duration == 2.0
    assert sorted(path.name for path in tmp_path.iterdir()) == ["task-1.json"]


def test_file_store_missing_and_invalid_ids(tmp_path: Path) -> None:
    store = FileMetadataStore(tmp_path)
    assert store.get("unknown") is None
    assert store.get("../etc/passwd") is None
    with pytest.raises(InvalidRequestError):
        store.put(_metadata("bad/id"))


def test_file_store_corrupt_record_is_a_storage_failure(tmp_path: Path) -> None:
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(StorageFailureError):
        FileMetadataStore(tmp_path).get("broken")


def test_file_store_migrate_creates_directory(tmp_path: Path) -> None:
    root = tmp_path / "nested" / "metadata"
    FileMetadataStore(root).migrate()
    assert root.is_dir()


def test_file_store_survives_new_instance(tmp_path: Path) -> None:
    FileMetadataStore(tmp_path).put(_metadata("persisted"))
    assert FileMetadataStore(tmp_path).get("persisted").task_id == "persisted"


def test_in_memory_store_returns_copies() -> None:
    store = InMemoryMetadataStore()
    store.put(_metadata())
    copy = store.get("task-1")
    copy.status = "failed"
    assert store.get("task-1").status == "completed"
    assert store.get("missing") is None
