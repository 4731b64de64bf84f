"""Shared error types for container orchestration."""

from __future__ import annotations

from collections.abc import Sequence


class ContainerOrchestrationError(Exception):
    """Base error for all container orchestration failures."""


class RuntimeUnavailableError(ContainerOrchestrationError):
    """No usable container runtime (docker or podman) was found."""

    def __init__(self, detail: str = "No container runtime (Docker or Podman) available") -> None:
        self.detail = detail
        super().__init__(detail)


class CommandError(ContainerOrchestrationError):
    """A runtime CLI invocation failed to spawn or exited non-zero."""

    def __init__(
        self,
        argv: Sequence[str],
        detail: str = "",
        *,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.argv = list(argv)
        self.detail = detail or f"command exited with status {returncode}"
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(self.detail)


class CommandTimeoutError(CommandError):
    """A runtime CLI invocation exceeded its timeout."""

    def __init__(self, argv: Sequence[str], timeout: float, *, stdout: str = "", stderr: str = "") -> None:
        self.timeout = timeout
        super().__init__(
            argv,
            f"Command timed out after {timeout}s",
            stdout=stdout,
            stderr=stderr,
        )


class DockerfileReadError(ContainerOrchestrationError):
    """The Dockerfile could not be read for hashing or building."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        self.detail = f"Failed to read Dockerfile: {path}"
        if reason:
            self.detail += f" ({reason})"
        super().__init__(self.detail)


class ConfigValidationError(ContainerOrchestrationError):
    """An environment config file failed parsing or validation."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)
