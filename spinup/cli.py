from __future__ import annotations

import asyncio
import logging

import typer
import uvicorn
import yaml
from fastapi.encoders import jsonable_encoder

from spinup.config import Settings
from spinup.logging_config import configure_logging
from spinup.models import Task, TaskRead, TaskStatus, WorkloadType
from spinup.provisioner import Provisioner
from spinup.services.errors import SpinupException
from spinup.services.workloads import access_url, parse_workload_type

configure_logging()
logger = logging.getLogger(__name__)
app = typer.Typer(help="Spinup CLI", pretty_exceptions_show_locals=False)


def _load_settings() -> Settings:
    try:
        settings = Settings.from_env()
    except ValueError as e:
        logger.warning("Invalid configuration: %s", e)
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    if errors := settings.validate():
        for error in errors:
            typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(code=1)
    configure_logging(level=settings.log_level)
    return settings


def build_provisioner(settings: Settings) -> Provisioner:
    return Provisioner.from_settings(settings)


def _exit_for_domain_error(exc: SpinupException) -> None:
    logger.warning("CLI command failed with domain error: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _echo_yaml_entity(entity: object) -> None:
    encoded = jsonable_encoder(entity)
    typer.echo(yaml.safe_dump(encoded, sort_keys=False), nl=False)


async def _provision_to_completion(provisioner: Provisioner, workload_type: WorkloadType) -> Task:
    task = provisioner.store.create_task(workload_type)
    return await provisioner.provision(task.id)


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind the API to."),
    port: int = typer.Option(3000, "--port", help="Port to bind the API to."),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes (development only)."),
) -> None:
    settings = _load_settings()
    uvicorn.run(
        "spinup.main:create_app",
        factory=True,
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
        reload=reload,
    )


@app.command("provision")
def provision(workload_type: str = typer.Argument(..., help="Workload to provision: 'desktop' or 'server'.")) -> None:
    """Provision one workload in-process and wait until it is running or failed."""
    try:
        workload = parse_workload_type(workload_type)
    except SpinupException as e:
        _exit_for_domain_error(e)
    settings = _load_settings()

    task = asyncio.run(_provision_to_completion(build_provisioner(settings), workload))
    _echo_yaml_entity(TaskRead.from_task(task, access_url=access_url(task, host=settings.public_host)))
    if task.status is TaskStatus.ERROR:
        typer.echo(f"Error: Provisioning failed for task {task.id}: {task.error_detail}", err=True)
        raise typer.Exit(code=1)


@app.command("allocate-port")
def allocate_port() -> None:
    """Print a host port from the configured range that is currently free."""
    settings = _load_settings()
    try:
        port = build_provisioner(settings).ports.allocate()
    except SpinupException as e:
        _exit_for_domain_error(e)
    typer.echo(port)


if __name__ == "__main__":
    app()
