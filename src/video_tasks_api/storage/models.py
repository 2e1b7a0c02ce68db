"""Storage models shared by API and persistence backends."""

import re
from datetime import datetime

from pydantic import BaseModel

# Task ids end up in file names, so they are restricted to a path-safe alphabet.
TASK_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,128}")


def is_valid_task_id(task_id: str) -> bool:
    return TASK_ID_PATTERN.fullmatch(task_id) is not None


class ArtifactMetadata(BaseModel):
    """Persisted outcome of one processed callback."""

    task_id: str
    # Declared by the worker; free-form, not restricted to the registry states.
    status: str
    duration: float | None = None
    message: str | None = None
    stored_filename: str
    stored_path: str
    size_bytes: int
    media_type: str
    download_url: str
    received_at: datetime
