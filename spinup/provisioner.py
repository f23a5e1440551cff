from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from spinup.config import Settings
from spinup.models import ContainerSpec, Task, TaskStatus, WorkloadType
from spinup.runtime import ContainerRuntime, DockerCliRuntime
from spinup.services.errors import (
    CreateException,
    NoFreePortsException,
    PullException,
    StartException,
)
from spinup.services.ports import PortAllocator
from spinup.services.tasks import TaskStore, advance, attach_container, fail
from spinup.services.workloads import WorkloadProfile, build_profiles, parse_workload_type

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class Provisioner:
    """Drives tasks from ``queued`` to ``running`` or ``error``.

    Each task gets its own asyncio task; the only way to observe progress is
    through the task store. Stage failures are caught at the pipeline
    boundary and recorded on the task, never raised to the caller.
    """

    def __init__(
        self,
        *,
        store: TaskStore,
        runtime: ContainerRuntime,
        ports: PortAllocator,
        profiles: dict[WorkloadType, WorkloadProfile],
        stabilization_delay: float = 6.0,
        sleep: Sleep | None = None,
    ) -> None:
        self.store = store
        self.ports = ports
        self._runtime = runtime
        self._profiles = profiles
        self._stabilization_delay = stabilization_delay
        self._sleep = sleep or asyncio.sleep
        self._inflight: set[asyncio.Task[Task]] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        runtime: ContainerRuntime | None = None,
        store: TaskStore | None = None,
        ports: PortAllocator | None = None,
    ) -> Provisioner:
        return cls(
            store=store or TaskStore(),
            runtime=runtime or DockerCliRuntime(binary=settings.docker_binary),
            ports=ports
            or PortAllocator(
                start=settings.port_range_start,
                end=settings.port_range_end,
                attempts=settings.port_allocation_attempts,
                bind_address=settings.port_bind_address,
            ),
            profiles=build_profiles(settings),
            stabilization_delay=settings.stabilization_delay,
        )

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    def deploy(self, workload_type: WorkloadType | str) -> Task:
        """Create a queued task and start provisioning it in the background."""
        task = self.store.create_task(parse_workload_type(workload_type))
        self.launch(task.id)
        return task

    def launch(self, task_id: str) -> asyncio.Task[Task]:
        self.store.get_task(task_id)
        job = asyncio.get_running_loop().create_task(self.provision(task_id), name=f"provision-{task_id}")
        self._inflight.add(job)
        job.add_done_callback(self._inflight.discard)
        return job

    async def wait_idle(self) -> None:
        while self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def provision(self, task_id: str) -> Task:
        task = self.store.get_task(task_id)
        profile = self._profiles[task.workload_type]
        logger.info("Starting provisioning for task id=%s type=%s", task_id, task.workload_type.value)
        try:
            await self._pull(task_id, profile)
            handle, host_port = await self._create(task_id, profile)
            await self._start(task_id, profile, handle=handle, host_port=host_port)
            if self._stabilization_delay > 0:
                logger.debug("Waiting %ss for task id=%s to settle", self._stabilization_delay, task_id)
                await self._sleep(self._stabilization_delay)
            self._advance(task_id, TaskStatus.RUNNING)
        except Exception as exc:
            stage = getattr(exc, "stage", "provision")
            logger.exception("Provisioning failed for task id=%s stage=%s", task_id, stage)
            detail = str(exc) or exc.__class__.__name__
            self.store.update_task(task_id, lambda t: fail(t, detail))
        final = self.store.get_task(task_id)
        logger.info(
            "Finished provisioning for task id=%s status=%s host_port=%s",
            task_id,
            final.status.value,
            final.host_port,
        )
        return final

    async def _pull(self, task_id: str, profile: WorkloadProfile) -> None:
        self._advance(task_id, TaskStatus.PULLING)
        try:
            await self._runtime.pull_image(profile.image)
        except Exception as exc:
            raise PullException(f"Image pull failed: {exc}") from exc

    async def _create(self, task_id: str, profile: WorkloadProfile) -> tuple[str, int]:
        self._advance(task_id, TaskStatus.CREATING)
        try:
            host_port = await asyncio.to_thread(self.ports.allocate)
        except NoFreePortsException:
            raise
        except Exception as exc:
            raise CreateException(f"Port allocation failed: {exc}") from exc

        spec = ContainerSpec(
            image=profile.image,
            exposed_port=profile.exposed_port,
            host_port=host_port,
            command=profile.command,
            name=f"spinup-{profile.workload_type.value}-{task_id[:12]}",
        )
        try:
            handle = await self._runtime.create_container(spec)
        except Exception as exc:
            await asyncio.to_thread(self.ports.release, host_port)
            raise CreateException(f"Container creation failed: {exc}") from exc

        self.store.update_task(task_id, lambda t: attach_container(t, handle=handle, host_port=host_port))
        return handle, host_port

    async def _start(self, task_id: str, profile: WorkloadProfile, *, handle: str, host_port: int) -> None:
        self._advance(task_id, TaskStatus.STARTING)
        try:
            await self._runtime.start_container(handle)
            inspection = await self._runtime.inspect(handle)
        except Exception as exc:
            raise StartException(f"Container start failed: {exc}") from exc

        # host_port is set once at create; a different binding reported by the runtime fails the task.
        if not inspection.running:
            raise StartException(f"Container {handle} is not running after start")
        bound = inspection.host_ports.get(profile.exposed_port)
        if bound != host_port:
            raise StartException(
                f"Container {handle} bound {profile.exposed_port} to host port {bound}, expected {host_port}"
            )

    def _advance(self, task_id: str, status: TaskStatus) -> None:
        self.store.update_task(task_id, lambda t: advance(t, status))
        logger.info("Task id=%s -> %s", task_id, status.value)
