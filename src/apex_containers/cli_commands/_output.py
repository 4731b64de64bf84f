"""Shared CLI output formatters."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from apex_containers.containers.models import OperationResult  # noqa: TC001
from apex_containers.images.models import BuildResult, ImageInfo  # noqa: TC001
from apex_containers.runtime.selector import RuntimeInfo  # noqa: TC001

console = Console()


def print_error(label: str, message: object) -> None:
    console.print(f"[red]{label}:[/red] {escape(str(message))}")


def print_operation_result(result: OperationResult, *, as_json: bool = False) -> None:
    """Pretty-print a container operation outcome."""
    if as_json:
        console.print_json(result.model_dump_json(exclude={"output"}))
        return

    if not result.success:
        print_error("Failed", result.error)
        if result.command:
            console.print(f"  Command: {escape(result.command)}")
        return

    console.print(f"[green]Container ready:[/green] {result.container_id}")
    if result.command:
        console.print(f"  Command: {escape(result.command)}")

    info = result.container_info
    if info is not None:
        console.print(f"  Name: {info.name}")
        console.print(f"  Image: {info.image}")
        console.print(f"  Status: {info.status.value}")
        if info.started_at is not None:
            console.print(f"  Started: {info.started_at.isoformat()}")


def print_build_result(result: BuildResult, *, verbose: bool = False) -> None:
    """Pretty-print an image build outcome."""
    if not result.success:
        print_error("Build failed", result.error)
        if result.build_output:
            console.print(escape(result.build_output))
        return

    info = result.image_info
    state = "built" if result.rebuilt else "cached"
    tag = info.tag if info else "?"
    console.print(f"[green]Image {state}:[/green] {tag} ({result.build_duration:.1f}s)")
    if info is not None:
        console.print(f"  ID: {info.id or '-'}")
        console.print(f"  Size: {info.size_formatted or '-'}")
    if verbose and result.build_output:
        console.print(escape(result.build_output))


def print_images_table(images: list[ImageInfo]) -> None:
    """Pretty-print project images as a table."""
    table = Table(title="Project Images")
    table.add_column("Tag", style="cyan")
    table.add_column("ID")
    table.add_column("Created")
    table.add_column("Size")

    for image in images:
        table.add_row(
            image.tag,
            image.id or "-",
            image.created.strftime("%Y-%m-%d %H:%M") if image.created else "-",
            image.size_formatted or "-",
        )

    console.print(table)


def print_runtimes_table(infos: list[RuntimeInfo]) -> None:
    """Pretty-print runtime probe results as a table."""
    table = Table(title="Container Runtimes")
    table.add_column("Runtime", style="cyan")
    table.add_column("Available")
    table.add_column("Version")
    table.add_column("Details")

    for info in infos:
        table.add_row(
            info.type.value,
            "[green]yes[/green]" if info.available else "[red]no[/red]",
            info.version or "-",
            _truncate(escape(info.error or info.build_info or "")),
        )

    console.print(table)


def _truncate(text: str, max_len: int = 60) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
