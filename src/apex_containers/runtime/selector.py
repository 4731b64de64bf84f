"""Container runtime selection.

The orchestration core only depends on the :class:`RuntimeSelector`
protocol. :class:`ContainerRuntime` is the default implementation that
probes the host for a working ``docker`` or ``podman`` binary.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from apex_containers.runtime.errors import CommandError
from apex_containers.runtime.process import CommandOutput, run_command

logger = logging.getLogger(__name__)

_VERSION_PATTERN = re.compile(r"version\s+([\w.\-+]+?)(?:,\s*build\s+(\S+))?\s*$", re.IGNORECASE)


class RuntimeType(str, Enum):
    """Runtime binaries the core knows how to drive."""

    DOCKER = "docker"
    PODMAN = "podman"
    NONE = "none"


@runtime_checkable
class RuntimeSelector(Protocol):
    """Reports which runtime binary is usable on the host."""

    async def best_runtime(self, preferred: RuntimeType | None = None) -> RuntimeType:
        """Return the runtime to use, or ``RuntimeType.NONE``."""
        ...

    async def is_available(self, name: RuntimeType) -> bool:
        """Return whether *name* is installed and functional."""
        ...


class RuntimeInfo(BaseModel):
    """Probe result for a single runtime binary."""

    type: RuntimeType
    available: bool = False
    version: str | None = Field(default=None, description="Parsed version number, e.g. '24.0.7'.")
    full_version: str | None = Field(default=None, description="Raw ``--version`` output line.")
    build_info: str | None = Field(default=None, description="Build identifier, when reported.")
    error: str | None = None
    command: str = ""


def parse_version(output: str) -> tuple[str | None, str | None]:
    """Extract ``(version, build)`` from a ``--version`` line."""
    match = _VERSION_PATTERN.search(output.strip())
    if not match:
        return None, None
    return match.group(1), match.group(2)


class ContainerRuntime:
    """Default :class:`RuntimeSelector` that probes the host.

    Each runtime is probed with ``<rt> --version`` (installed?) and
    ``<rt> info`` (daemon reachable?). Probe results are cached per
    instance until :meth:`clear_cache` is called. Docker is preferred over
    Podman unless a preferred runtime is given and available.
    """

    _PROBE_ORDER = (RuntimeType.DOCKER, RuntimeType.PODMAN)

    def __init__(self, *, timeout: float = 10.0) -> None:
        self._timeout = timeout
        self._cache: dict[RuntimeType, RuntimeInfo] = {}

    def clear_cache(self) -> None:
        self._cache.clear()

    async def detect_runtimes(self) -> list[RuntimeInfo]:
        """Probe every known runtime and return their status."""
        return [await self.get_runtime_info(rt) for rt in self._PROBE_ORDER]

    async def get_runtime_info(self, name: RuntimeType) -> RuntimeInfo:
        if name is RuntimeType.NONE:
            return RuntimeInfo(type=name, error="No container runtime requested")
        if name not in self._cache:
            self._cache[name] = await self._probe(name)
        return self._cache[name]

    async def is_available(self, name: RuntimeType) -> bool:
        info = await self.get_runtime_info(name)
        return info.available

    async def best_runtime(self, preferred: RuntimeType | None = None) -> RuntimeType:
        if preferred is not None and preferred is not RuntimeType.NONE:
            if await self.is_available(preferred):
                return preferred
        for candidate in self._PROBE_ORDER:
            if await self.is_available(candidate):
                return candidate
        return RuntimeType.NONE

    async def _probe(self, name: RuntimeType) -> RuntimeInfo:
        version_argv = [name.value, "--version"]
        command = " ".join(version_argv)
        try:
            output = await self._run_command(version_argv)
        except CommandError:
            return RuntimeInfo(type=name, error=f"{name.value} is not installed", command=command)

        full_version = output.stdout.strip()
        version, build = parse_version(full_version)

        try:
            await self._run_command([name.value, "info"])
        except CommandError as exc:
            logger.debug("%s installed but not functional: %s", name.value, exc.detail)
            return RuntimeInfo(
                type=name,
                available=False,
                version=version,
                full_version=full_version,
                build_info=build,
                error=f"{name.value.capitalize()} is installed but not functional: {exc.detail}",
                command=command,
            )

        return RuntimeInfo(
            type=name,
            available=True,
            version=version,
            full_version=full_version,
            build_info=build,
            command=command,
        )

    async def _run_command(self, argv: list[str]) -> CommandOutput:
        return await run_command(argv, timeout=self._timeout)
