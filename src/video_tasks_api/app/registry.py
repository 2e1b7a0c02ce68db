"""In-memory task registry: the lifecycle state machine for submitted tasks.

State machine:
- pending -> completed (callback reports success)
- pending -> failed    (callback reports failure)
Both terminal states are final. A transition requested for a task that is
already terminal keeps the status but refreshes the artifact fields
(video_url, duration, message), matching the last stored callback.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from .errors import InvalidRequestError, TaskNotFoundError
from .models import TERMINAL_STATUSES, Task, TaskStatus

logger = logging.getLogger(__name__)


def new_task_id() -> str:
    """Mint a task id: 32 hex chars from uuid4 (122 random bits)."""
    return uuid.uuid4().hex


class TaskRegistry:
    """Thread-safe mapping from task id to its current Task snapshot."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = threading.Lock()

    def create(self, script: str, search_query: str) -> Task:
        if not script or not script.strip():
            raise InvalidRequestError("Script and search query are required")
        if not search_query or not search_query.strip():
            raise InvalidRequestError("Script and search query are required")

        now = datetime.now(tz=UTC)
        with self._lock:
            task_id = new_task_id()
            while task_id in self._tasks:
                task_id = new_task_id()
            task = Task(
                task_id=task_id,
                status="pending",
                script=script,
                search_query=search_query,
                created_at=now,
                updated_at=now,
            )
            self._tasks[task_id] = task
        logger.info("task event=created task_id=%s status=pending", task_id)
        return task.model_copy(deep=True)

    def get(self, task_id: str) -> Task | None:
        with self._lock:
            task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    def transition(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        video_url: str | None = None,
        duration: float | None = None,
        message: str | None = None,
    ) -> Task:
        if status not in TERMINAL_STATUSES:
            raise InvalidRequestError(f"Cannot transition task to {status!r}")

        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                raise TaskNotFoundError(task_id)
            update = {
                "video_url": video_url,
                "duration": duration,
                "message": message,
                "updated_at": datetime.now(tz=UTC),
            }
            terminal = current.status in TERMINAL_STATUSES
            if not terminal:
                update["status"] = status
            # Artifact fields follow the latest delivery even when the status is final.
            updated = current.model_copy(update=update)
            self._tasks[task_id] = updated
        if terminal:
            logger.info(
                "task event=status_kept task_id=%s status=%s requested=%s",
                task_id,
                current.status,
                status,
            )
        else:
            logger.info("task event=transitioned task_id=%s status=%s", task_id, status)
        return updated.model_copy(deep=True)


class KeyedLock:
    """One lock per key; callers holding different keys never contend."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # key -> [lock, number of holders/waiters]
        self._entries: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        lock: threading.Lock = entry[0]
        try:
            with lock:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]
