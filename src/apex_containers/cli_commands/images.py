"""``apex-containers images``: list and prune project images."""

from __future__ import annotations

import asyncio

import click

from apex_containers.cli_commands._output import console, print_images_table


@click.command()
@click.option(
    "--cleanup",
    "keep_count",
    type=click.IntRange(min=0),
    default=None,
    help="Remove all but the N newest project images.",
)
@click.option(
    "--project-root",
    type=click.Path(file_okay=False),
    default=".",
    help="Project root holding the .apex image cache.",
)
def images(keep_count: int | None, project_root: str) -> None:
    """List images built for this project."""
    from apex_containers.images.builder import ImageBuilder

    builder = ImageBuilder(project_root)

    if keep_count is not None:
        removed = asyncio.run(builder.cleanup_old_images(keep_count))
        console.print(f"Removed {removed} image(s).")

    project_images = asyncio.run(builder.list_project_images())
    if not project_images:
        console.print("[yellow]No project images found.[/yellow]")
        return

    print_images_table(project_images)
