"""Runtime layer: runtime selection, subprocess execution and errors."""

from apex_containers.runtime.errors import (
    CommandError,
    CommandTimeoutError,
    ConfigValidationError,
    ContainerOrchestrationError,
    DockerfileReadError,
    RuntimeUnavailableError,
)
from apex_containers.runtime.process import CommandOutput, render_command, run_command
from apex_containers.runtime.selector import (
    ContainerRuntime,
    RuntimeInfo,
    RuntimeSelector,
    RuntimeType,
)

__all__ = [
    "CommandError",
    "CommandOutput",
    "CommandTimeoutError",
    "ConfigValidationError",
    "ContainerOrchestrationError",
    "ContainerRuntime",
    "DockerfileReadError",
    "RuntimeInfo",
    "RuntimeSelector",
    "RuntimeType",
    "RuntimeUnavailableError",
    "render_command",
    "run_command",
]
