"""Async subprocess execution for runtime CLI commands.

Commands are always passed as an argument vector straight to
:func:`asyncio.create_subprocess_exec`; no shell ever interprets them.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex
from collections.abc import Sequence
from dataclasses import dataclass

from apex_containers.runtime.errors import CommandError, CommandTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandOutput:
    """Decoded output of a finished runtime command."""

    stdout: str = ""
    stderr: str = ""
    returncode: int = 0


def render_command(argv: Sequence[str]) -> str:
    """Render *argv* as a copy-pasteable shell line.

    Tokens containing whitespace or shell metacharacters are single-quoted;
    plain tokens are left as-is.
    """
    return shlex.join(argv)


async def run_command(argv: Sequence[str], *, timeout: float) -> CommandOutput:
    """Run *argv* and return its output.

    Raises:
        CommandTimeoutError: The process did not finish within *timeout*
            seconds (it is killed).
        CommandError: The process could not be spawned or exited non-zero.
    """
    logger.debug("Running: %s", render_command(argv))

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise CommandError(argv, f"Failed to run {argv[0]}: {exc}") from exc

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        raise CommandTimeoutError(argv, timeout) from None

    stdout = stdout_bytes.decode(errors="replace") if stdout_bytes else ""
    stderr = stderr_bytes.decode(errors="replace") if stderr_bytes else ""
    returncode = proc.returncode or 0

    if returncode != 0:
        raise CommandError(
            argv,
            stderr.strip() or stdout.strip(),
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
        )

    return CommandOutput(stdout=stdout, stderr=stderr, returncode=returncode)
