import random

import pytest
from starlette.testclient import TestClient
from typer.testing import CliRunner

from spinup.config import Settings
from spinup.main import create_app
from spinup.models import Task
from spinup.provisioner import Provisioner
from spinup.services.ports import PortAllocator
from spinup.services.tasks import TaskStore
from spinup.services.workloads import build_profiles
from tests.runtime_utils import FakeRuntime


class RecordingTaskStore(TaskStore):
    """Task store that keeps every snapshot written per task id."""

    def __init__(self) -> None:
        super().__init__()
        self.history: dict[str, list[Task]] = {}

    def create_task(self, workload_type):
        task = super().create_task(workload_type)
        self.history[task.id] = [task]
        return task

    def update_task(self, task_id, mutation):
        updated = super().update_task(task_id, mutation)
        if updated is not None:
            self.history[task_id].append(updated)
        return updated

    def statuses(self, task_id: str) -> list[str]:
        collapsed: list[str] = []
        for snapshot in self.history[task_id]:
            if not collapsed or collapsed[-1] != snapshot.status.value:
                collapsed.append(snapshot.status.value)
        return collapsed


@pytest.fixture
def settings():
    return Settings(stabilization_delay=0, public_host="spinup.test")


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def store():
    return RecordingTaskStore()


@pytest.fixture
def ports(settings):
    return PortAllocator(
        start=settings.port_range_start,
        end=settings.port_range_end,
        attempts=settings.port_allocation_attempts,
        probe=lambda address, port: True,
        rng=random.Random(1234),
    )


@pytest.fixture
def provisioner(settings, runtime, store, ports):
    return Provisioner(
        store=store,
        runtime=runtime,
        ports=ports,
        profiles=build_profiles(settings),
        stabilization_delay=settings.stabilization_delay,
    )


@pytest.fixture
def client(settings, provisioner):
    app = create_app(settings, provisioner=provisioner)
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def cli_runner(monkeypatch, provisioner):
    import spinup.cli as cli

    monkeypatch.setattr(cli, "build_provisioner", lambda settings: provisioner)
    monkeypatch.setenv("SPINUP_PUBLIC_HOST", "spinup.test")
    return CliRunner(), cli.app
