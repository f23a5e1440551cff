from __future__ import annotations

from fastapi import APIRouter, Depends, status

from spinup.api.utils import get_provisioner, get_settings
from spinup.config import Settings
from spinup.models import DeployRequest, DeployResponse, Task, TaskRead
from spinup.provisioner import Provisioner
from spinup.services.workloads import access_url

router = APIRouter(tags=["workloads"])


def _read(task: Task, settings: Settings) -> TaskRead:
    return TaskRead.from_task(task, access_url=access_url(task, host=settings.public_host))


@router.post("/deploy", response_model=DeployResponse, status_code=status.HTTP_202_ACCEPTED)
async def deploy(payload: DeployRequest, provisioner: Provisioner = Depends(get_provisioner)) -> DeployResponse:
    # Returns as soon as the task is queued; the pipeline keeps running on the event loop.
    task = provisioner.deploy(payload.type)
    return DeployResponse(id=task.id)


@router.get("/status/{task_id}", response_model=TaskRead)
async def get_status(
    task_id: str,
    provisioner: Provisioner = Depends(get_provisioner),
    settings: Settings = Depends(get_settings),
) -> TaskRead:
    return _read(provisioner.store.get_task(task_id), settings)


@router.get("/tasks", response_model=list[TaskRead])
async def list_tasks(
    provisioner: Provisioner = Depends(get_provisioner),
    settings: Settings = Depends(get_settings),
) -> list[TaskRead]:
    return [_read(task, settings) for task in provisioner.store.list_tasks()]
