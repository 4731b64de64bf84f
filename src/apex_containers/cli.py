"""apex-containers CLI entrypoint."""

from __future__ import annotations

import click

from apex_containers import __version__


@click.group()
@click.version_option(version=__version__, prog_name="apex-containers")
def main() -> None:
    """apex-containers: build, create and start task containers."""


# Register subcommands
from apex_containers.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
