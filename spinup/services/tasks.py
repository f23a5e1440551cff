from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
import logging
import threading
import uuid
from typing import Callable

from spinup.models import PIPELINE_ORDER, Task, TaskStatus, WorkloadType
from spinup.services.errors import InvalidStateTransition, NotFoundException

logger = logging.getLogger(__name__)

TaskMutation = Callable[[Task], Task]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def advance(task: Task, to_status: TaskStatus, *, now: datetime | None = None) -> Task:
    """Move a task exactly one step forward along the success path."""
    if task.is_terminal or to_status is TaskStatus.ERROR:
        raise InvalidStateTransition(task.status.value, to_status.value)
    current_index = PIPELINE_ORDER.index(task.status)
    if current_index + 1 >= len(PIPELINE_ORDER) or PIPELINE_ORDER[current_index + 1] is not to_status:
        raise InvalidStateTransition(task.status.value, to_status.value)
    return replace(task, status=to_status, updated_at=now or _utcnow())


def fail(task: Task, detail: str, *, now: datetime | None = None) -> Task:
    """Move any non-terminal task to ``error``."""
    if task.is_terminal:
        raise InvalidStateTransition(task.status.value, TaskStatus.ERROR.value)
    return replace(task, status=TaskStatus.ERROR, error_detail=detail, updated_at=now or _utcnow())


def attach_container(task: Task, *, handle: str, host_port: int, now: datetime | None = None) -> Task:
    """Record the created container; allowed once, while the task is creating."""
    if task.status is not TaskStatus.CREATING:
        raise InvalidStateTransition(task.status.value, "attach_container")
    if task.container_handle is not None or task.host_port is not None:
        raise ValueError(f"task {task.id} already has a container attached")
    return replace(task, container_handle=handle, host_port=host_port, updated_at=now or _utcnow())


class TaskStore:
    """Process-local task registry shared by the request handlers and pipelines.

    Snapshots are immutable; ``update_task`` swaps in a new snapshot under a
    lock owned by that task id, so writers of different tasks never contend.
    """

    def __init__(self, *, id_factory: Callable[[], str] | None = None) -> None:
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._tasks: dict[str, Task] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def create_task(self, workload_type: WorkloadType) -> Task:
        now = _utcnow()
        with self._registry_lock:
            task_id = self._id_factory()
            while task_id in self._tasks:
                task_id = self._id_factory()
            task = Task(id=task_id, workload_type=workload_type, created_at=now, updated_at=now)
            self._tasks[task_id] = task
            self._locks[task_id] = threading.Lock()
        logger.info("Created task id=%s type=%s", task.id, workload_type.value)
        return task

    def get_task(self, task_id: str) -> Task:
        if not (task := self._tasks.get(task_id)):
            raise NotFoundException(f"Task {task_id} not found")
        return task

    def list_tasks(self) -> list[Task]:
        with self._registry_lock:
            tasks = list(self._tasks.values())
        return sorted(tasks, key=lambda t: t.created_at)

    def update_task(self, task_id: str, mutation: TaskMutation) -> Task | None:
        lock = self._locks.get(task_id)
        if lock is None:
            logger.warning("Ignoring update for unknown task id=%s", task_id)
            return None
        with lock:
            updated = mutation(self._tasks[task_id])
            self._tasks[task_id] = updated
        logger.debug("Updated task id=%s status=%s", task_id, updated.status.value)
        return updated

    def __len__(self) -> int:
        return len(self._tasks)
