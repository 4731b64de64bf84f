"""``apex-containers build``: build a project image with Dockerfile caching."""

from __future__ import annotations

import asyncio
import sys

import click

from apex_containers.cli_commands._output import print_build_result, print_error


def _parse_build_args(
    ctx: click.Context,
    param: click.Parameter,
    values: tuple[str, ...],
) -> dict[str, str]:
    args: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", ctx=ctx, param=param)
        args[key] = value
    return args


@click.command()
@click.argument("dockerfile", type=click.Path(exists=True, dir_okay=False))
@click.option("--context", "build_context", default=None, help="Build context directory.")
@click.option("--tag", "image_tag", default=None, help="Image tag (default: derived from the project).")
@click.option(
    "--build-arg",
    "build_args",
    multiple=True,
    callback=_parse_build_args,
    help="Build argument as KEY=VALUE (repeatable).",
)
@click.option("--target", default=None, help="Multi-stage build target.")
@click.option("--platform", default=None, help="Target platform, e.g. linux/arm64.")
@click.option("--no-cache", is_flag=True, help="Disable the runtime's layer cache.")
@click.option("--force", is_flag=True, help="Rebuild even if the Dockerfile is unchanged.")
@click.option(
    "--project-root",
    type=click.Path(file_okay=False),
    default=".",
    help="Project root holding the .apex image cache.",
)
@click.option("--verbose", "-v", is_flag=True, help="Print the build log.")
def build(
    dockerfile: str,
    build_context: str | None,
    image_tag: str | None,
    build_args: dict[str, str],
    target: str | None,
    platform: str | None,
    no_cache: bool,
    force: bool,
    project_root: str,
    verbose: bool,
) -> None:
    """Build an image from DOCKERFILE, reusing the cached image when unchanged."""
    from apex_containers.images.builder import ImageBuilder
    from apex_containers.images.models import BuildSpec

    spec = BuildSpec(
        dockerfile_path=dockerfile,
        build_context=build_context,
        image_tag=image_tag,
        build_args=build_args,
        target=target,
        platform=platform,
        no_cache=no_cache,
        force_rebuild=force,
    )
    builder = ImageBuilder(project_root)

    try:
        result = asyncio.run(builder.build_image(spec))
    except Exception as exc:
        print_error("Build error", exc)
        sys.exit(1)

    print_build_result(result, verbose=verbose)
    if not result.success:
        sys.exit(1)
