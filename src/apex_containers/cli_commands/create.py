"""``apex-containers create``: create (and optionally start) a task container."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from apex_containers.cli_commands._output import console, print_error, print_operation_result


@click.command()
@click.argument("config", type=click.Path(exists=True, dir_okay=False))
@click.option("--task-id", "-t", required=True, help="Task the container belongs to.")
@click.option("--start", "auto_start", is_flag=True, help="Start the container after creating it.")
@click.option("--name", "name_override", default=None, help="Use this container name verbatim.")
@click.option(
    "--project-root",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory Dockerfile paths are relative to (default: the config's directory).",
)
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.option("--telemetry", is_flag=True, help="Export tracing spans to the console.")
def create(
    config: str,
    task_id: str,
    auto_start: bool,
    name_override: str | None,
    project_root: str | None,
    as_json: bool,
    telemetry: bool,
) -> None:
    """Create a container from the environment described in CONFIG yaml file."""
    from apex_containers.config import EnvironmentLoader
    from apex_containers.containers.manager import ContainerManager
    from apex_containers.containers.models import CreationRequest

    config_path = Path(config)
    try:
        environment = EnvironmentLoader(config_path).load()
    except Exception as exc:
        print_error("Validation error", exc)
        sys.exit(1)

    if telemetry:
        _enable_telemetry()

    root = Path(project_root) if project_root else config_path.parent
    manager = ContainerManager(project_root=root)
    request = CreationRequest(
        config=environment,
        task_id=task_id,
        auto_start=auto_start,
        name_override=name_override,
    )

    result = asyncio.run(manager.create_container(request))
    print_operation_result(result, as_json=as_json)
    if not result.success:
        sys.exit(1)


def _enable_telemetry() -> None:
    from apex_containers.utils.telemetry import configure_telemetry

    try:
        configure_telemetry()
    except ImportError as exc:
        console.print(f"[yellow]Telemetry disabled:[/yellow] {exc}")
