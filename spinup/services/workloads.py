from __future__ import annotations

from dataclasses import dataclass
import shlex
from typing import Optional

from spinup.config import Settings
from spinup.models import Task, TaskStatus, WorkloadType
from spinup.services.errors import ValidationException

DESKTOP_PORT = "6080/tcp"
SERVER_PORT = "22/tcp"
SERVER_USER = "root"


@dataclass(frozen=True)
class WorkloadProfile:
    workload_type: WorkloadType
    image: str
    exposed_port: str
    command: Optional[str] = None


def parse_workload_type(value: object) -> WorkloadType:
    if isinstance(value, WorkloadType):
        return value
    # Exact lowercase names only; "Desktop" or " server " are unknown types.
    try:
        return WorkloadType(value)
    except ValueError as exc:
        allowed = ", ".join(t.value for t in WorkloadType)
        raise ValidationException(f"Unknown workload type {value!r}; expected one of: {allowed}") from exc


def sshd_bootstrap_command(password: str) -> str:
    """Shell script that installs and runs an ssh daemon accepting root/password logins."""
    credential = shlex.quote(f"{SERVER_USER}:{password}")
    return " && ".join(
        [
            "export DEBIAN_FRONTEND=noninteractive",
            "apt-get update",
            "apt-get install -y openssh-server",
            "mkdir -p /run/sshd",
            f"echo {credential} | chpasswd",
            "sed -i 's/^#\\?PermitRootLogin.*/PermitRootLogin yes/' /etc/ssh/sshd_config",
            "exec /usr/sbin/sshd -D",
        ]
    )


def build_profiles(settings: Settings) -> dict[WorkloadType, WorkloadProfile]:
    return {
        WorkloadType.DESKTOP: WorkloadProfile(
            workload_type=WorkloadType.DESKTOP,
            image=settings.desktop_image,
            exposed_port=DESKTOP_PORT,
        ),
        WorkloadType.SERVER: WorkloadProfile(
            workload_type=WorkloadType.SERVER,
            image=settings.server_image,
            exposed_port=SERVER_PORT,
            command=sshd_bootstrap_command(settings.server_password),
        ),
    }


def access_url(task: Task, *, host: str) -> str | None:
    """Client-facing endpoint of a running task, or None while it is not reachable."""
    if task.status is not TaskStatus.RUNNING or task.host_port is None:
        return None
    if task.workload_type is WorkloadType.DESKTOP:
        return f"http://{host}:{task.host_port}"
    return f"ssh://{SERVER_USER}@{host}:{task.host_port}"
