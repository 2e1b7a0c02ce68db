from __future__ import annotations

import threading
import time

import pytest

from video_tasks_api.app.errors import InvalidRequestError, TaskNotFoundError
from video_tasks_api.app.registry import KeyedLock, TaskRegistry, new_task_id
from video_tasks_api.storage.models import is_valid_task_id


def test_create_registers_pending_task() -> None:
    registry = TaskRegistry()
    task = registry.create("script", "query")

    assert task.status == "pending"
    assert registry.get(task.task_id) == task
    assert is_valid_task_id(task.task_id)


def test_create_validates_required_fields() -> None:
    registry = TaskRegistry()
    with pytest.raises(InvalidRequestError):
        registry.create("", "query")
    with pytest.raises(InvalidRequestError):
        registry.create("script", "  ")


def test_transition_to_terminal_state() -> None:
    registry = TaskRegistry()
    task = registry.create("script", "query")

    updated = registry.transition(
        task.task_id, "completed", video_url="/api/video/x", duration=4.0, message="ok"
    )
    assert updated.status == "completed"
    assert updated.video_url == "/api/video/x"
    assert updated.duration == 4.0
    assert updated.updated_at >= task.updated_at


def test_terminal_state_is_final() -> None:
    registry = TaskRegistry()
    task = registry.create("script", "query")
    registry.transition(task.task_id, "failed", message="render crashed")

    again = registry.transition(
        task.task_id, "completed", video_url="/api/video/x", duration=7.0, message="retry"
    )
    assert again.status == "failed"
    # Artifact fields track the latest delivery.
    assert again.video_url == "/api/video/x"
    assert again.duration == 7.0
    assert again.message == "retry"
    assert registry.get(task.task_id).status == "failed"


def test_transition_rejects_non_terminal_target() -> None:
    registry = TaskRegistry()
    task = registry.create("script", "query")
    with pytest.raises(InvalidRequestError):
        registry.transition(task.task_id, "pending")


def test_transition_unknown_task() -> None:
    with pytest.raises(TaskNotFoundError):
        TaskRegistry().transition("missing", "completed")


def test_get_returns_a_copy() -> None:
    registry = TaskRegistry()
    task = registry.create("script", "query")
    snapshot = registry.get(task.task_id)
    snapshot.status = "completed"
    assert registry.get(task.task_id).status == "pending"


def test_new_task_id_shape() -> None:
    task_id = new_task_id()
    assert len(task_id) == 32
    int(task_id, 16)


def test_keyed_lock_serializes_same_key_only() -> None:
    locks = KeyedLock()
    events: list[str] = []
    first_holding = threading.Event()

    def hold_a() -> None:
        with locks.hold("a"):
            first_holding.set()
            time.sleep(0.2)
            events.append("a1-done")

    def wait_a() -> None:
        first_holding.wait()
        with locks.hold("a"):
            events.append("a2")

    def other_key() -> None:
        first_holding.wait()
        with locks.hold("b"):
            events.append("b")

    threads = [threading.Thread(target=fn) for fn in (hold_a, wait_a, other_key)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert events.index("b") < events.index("a1-done")
    assert events.index("a1-done") < events.index("a2")
    assert locks._entries == {}
