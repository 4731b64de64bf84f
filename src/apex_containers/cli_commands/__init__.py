"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from apex_containers.cli_commands.build import build
    from apex_containers.cli_commands.create import create
    from apex_containers.cli_commands.images import images
    from apex_containers.cli_commands.runtimes import runtimes

    cli.add_command(create)
    cli.add_command(build)
    cli.add_command(images)
    cli.add_command(runtimes)
