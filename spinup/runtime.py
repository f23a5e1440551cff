from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

from spinup.models import ContainerInspection, ContainerSpec
from spinup.proc import CommandRunner, run_command

logger = logging.getLogger(__name__)


class ContainerRuntime(Protocol):
    """Operations the provisioner needs from a container engine."""

    async def pull_image(self, reference: str) -> None: ...

    async def create_container(self, spec: ContainerSpec) -> str: ...

    async def start_container(self, handle: str) -> None: ...

    async def inspect(self, handle: str) -> ContainerInspection: ...


class DockerCliRuntime:
    """Container runtime backed by the ``docker`` CLI.

    Every command runs in a worker thread so a slow pull or a hung daemon
    never blocks the event loop serving status requests.
    """

    def __init__(self, *, binary: str = "docker", runner: CommandRunner | None = None) -> None:
        self._binary = binary
        self._runner = runner

    async def pull_image(self, reference: str) -> None:
        logger.info("Pulling image %s", reference)
        await self._run(["pull", reference], error_message=f"Failed to pull image {reference}")
        logger.info("Pulled image %s", reference)

    async def create_container(self, spec: ContainerSpec) -> str:
        logger.info(
            "Creating container image=%s exposed_port=%s host_port=%s",
            spec.image,
            spec.exposed_port,
            spec.host_port,
        )
        result = await self._run(
            build_create_args(spec),
            error_message=f"Failed to create container from image {spec.image}",
        )
        lines = result.stdout.strip().splitlines()
        if not lines:
            raise ValueError(f"docker create returned no container id for image {spec.image}")
        handle = lines[-1].strip()
        logger.info("Created container %s", handle)
        return handle

    async def start_container(self, handle: str) -> None:
        logger.info("Starting container %s", handle)
        await self._run(["start", handle], error_message=f"Failed to start container {handle}")

    async def inspect(self, handle: str) -> ContainerInspection:
        result = await self._run(["inspect", handle], error_message=f"Failed to inspect container {handle}")
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON from docker inspect for container {handle}") from exc
        return parse_inspection(handle, payload)

    async def _run(self, args: list[str], *, error_message: str):
        return await asyncio.to_thread(
            run_command,
            [self._binary, *args],
            runner=self._runner,
            error_message=error_message,
        )


def build_create_args(spec: ContainerSpec) -> list[str]:
    args = ["create"]
    if spec.tty:
        args.append("--tty")
    if spec.name:
        args.extend(["--name", spec.name])
    args.extend(["--expose", spec.exposed_port, "--publish", f"{spec.host_port}:{spec.exposed_port}"])
    args.append(spec.image)
    if spec.command:
        args.extend(["sh", "-c", spec.command])
    return args


def parse_inspection(handle: str, payload: Any) -> ContainerInspection:
    """Extract running state and host port bindings from ``docker inspect`` output."""
    entry = payload[0] if isinstance(payload, list) and payload else payload
    if not isinstance(entry, dict):
        raise ValueError(f"Unexpected docker inspect payload for container {handle}")

    state = entry.get("State") or {}
    network = entry.get("NetworkSettings") or {}
    host_ports: dict[str, int] = {}
    for exposed, bindings in (network.get("Ports") or {}).items():
        # Unpublished ports map to null; IPv4 and IPv6 bindings share one host port.
        for binding in bindings or ():
            raw = binding.get("HostPort") if isinstance(binding, dict) else None
            if raw:
                host_ports[exposed] = int(raw)
                break

    return ContainerInspection(
        handle=entry.get("Id") or handle,
        running=bool(state.get("Running")),
        host_ports=host_ports,
    )
