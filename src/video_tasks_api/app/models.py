"""Pydantic models shared across the API, registry, ingestor, and delivery path.

Beginner terms used in this file:
- Model: a typed schema class used for validation/serialization.
- Literal: restricts a field to a fixed set of allowed string values.
- Field(alias=...): the JSON key used on the wire when it differs from the attribute.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# Task lifecycle states used by the registry + API responses.
TaskStatus = Literal["pending", "completed", "failed"]
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class Task(BaseModel):
    """Canonical task record returned by the registry and GET /tasks/{task_id}."""

    task_id: str
    status: TaskStatus = "pending"
    # Job payload submitted by the client and handed to the external worker.
    script: str
    search_query: str
    created_at: datetime
    updated_at: datetime
    # Filled in when the callback for this task arrives.
    video_url: str | None = None
    duration: float | None = None
    message: str | None = None


class CreateTaskRequest(BaseModel):
    """Request body for POST /tasks."""

    # min_length enforces non-empty fields at the API boundary.
    script: str = Field(min_length=1)
    search_query: str = Field(min_length=1)


class CallbackResponse(BaseModel):
    """Response body for POST /api/video-callback."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    download_url: str = Field(alias="downloadUrl")


class VideoStatus(BaseModel):
    """Response body for GET /api/video-status/{task_id}."""

    model_config = ConfigDict(populate_by_name=True)

    task_id: str
    status: str
    duration: float | None = None
    download_url: str | None = Field(default=None, alias="downloadUrl")
    received_at: datetime | None = Field(default=None, alias="receivedAt")
