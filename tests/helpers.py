from __future__ import annotations

import os
from pathlib import Path

from fastapi.testclient import TestClient

from video_tasks_api.config.settings import Settings


def make_video_bytes(size: int) -> bytes:
    """Deterministic payload whose bytes differ by offset, so range slices are distinguishable."""
    return bytes((index * 31 + index // 256) % 256 for index in range(size))


def post_callback(
    client: TestClient,
    task_id: str | None,
    payload: bytes | None,
    *,
    status: str = "completed",
    duration: str | None = "12.5",
    message: str | None = "done",
    media_type: str = "video/mp4",
):
    data: dict[str, str] = {"status": status}
    if task_id is not None:
        data["task_id"] = task_id
    if duration is not None:
        data["duration"] = duration
    if message is not None:
        data["message"] = message
    files = None
    if payload is not None:
        files = {"video": ("clip.mp4", payload, media_type)}
    return client.post("/api/video-callback", data=data, files=files)


def stored_blobs(settings: Settings) -> list[str]:
    root = Path(settings.content_root)
    if not root.exists():
        return []
    return sorted(name for name in os.listdir(root) if not name.startswith("."))
