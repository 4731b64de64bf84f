"""``apex-containers runtimes``: show which container runtimes are usable."""

from __future__ import annotations

import asyncio
import sys

import click

from apex_containers.cli_commands._output import console, print_runtimes_table


@click.command()
def runtimes() -> None:
    """Probe docker and podman and report their availability."""
    from apex_containers.runtime.selector import ContainerRuntime, RuntimeInfo, RuntimeType

    selector = ContainerRuntime()

    async def _probe() -> tuple[list[RuntimeInfo], RuntimeType]:
        infos = await selector.detect_runtimes()
        return infos, await selector.best_runtime()

    infos, best = asyncio.run(_probe())
    print_runtimes_table(infos)

    if best is RuntimeType.NONE:
        console.print("[red]No container runtime (Docker or Podman) available.[/red]")
        sys.exit(1)
    console.print(f"Using: [cyan]{best.value}[/cyan]")
