from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from video_tasks_api.config.settings import Settings
from video_tasks_api.main import create_app


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        content_root=tmp_path / "videos",
        metadata_root=tmp_path / "metadata",
        metadata_backend="file",
        max_upload_bytes=1024 * 1024,
        chunk_size=4096,
    )


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    app = create_app(settings_override=settings)
    with TestClient(app) as test_client:
        yield test_client
