from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel


class WorkloadType(str, Enum):
    DESKTOP = "desktop"
    SERVER = "server"


class TaskStatus(str, Enum):
    QUEUED = "queued"
    PULLING = "pulling"
    CREATING = "creating"
    STARTING = "starting"
    RUNNING = "running"
    ERROR = "error"


# Success path; ERROR is reachable from every non-terminal status.
PIPELINE_ORDER = (
    TaskStatus.QUEUED,
    TaskStatus.PULLING,
    TaskStatus.CREATING,
    TaskStatus.STARTING,
    TaskStatus.RUNNING,
)
TERMINAL_STATUSES = frozenset({TaskStatus.RUNNING, TaskStatus.ERROR})


@dataclass(frozen=True)
class Task:
    """Snapshot of one provisioning attempt. Updates produce new snapshots."""

    id: str
    workload_type: WorkloadType
    created_at: datetime
    updated_at: datetime
    status: TaskStatus = TaskStatus.QUEUED
    container_handle: Optional[str] = None
    host_port: Optional[int] = None
    error_detail: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class ContainerSpec:
    image: str
    exposed_port: str
    host_port: int
    command: Optional[str] = None
    name: Optional[str] = None
    tty: bool = True


@dataclass(frozen=True)
class ContainerInspection:
    handle: str
    running: bool
    # Exposed port key (e.g. "6080/tcp") -> host port bound by the runtime.
    host_ports: dict[str, int]


class DeployRequest(SQLModel):
    type: str


class DeployResponse(SQLModel):
    id: str


class TaskRead(SQLModel):
    id: str
    type: WorkloadType
    status: TaskStatus
    container_handle: Optional[str] = None
    host_port: Optional[int] = None
    error_detail: Optional[str] = None
    access_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_task(cls, task: Task, *, access_url: str | None = None) -> "TaskRead":
        return cls(
            id=task.id,
            type=task.workload_type,
            status=task.status,
            container_handle=task.container_handle,
            host_port=task.host_port,
            error_detail=task.error_detail,
            access_url=access_url,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )
