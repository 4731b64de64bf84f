"""Data models for container orchestration."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

_MEMORY_PATTERN = re.compile(r"^\d+[kKmMgG]?$")


class ContainerStatus(str, Enum):
    """Normalised container state as reported by ``inspect``."""

    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    RESTARTING = "restarting"
    REMOVING = "removing"
    EXITED = "exited"
    DEAD = "dead"


class ResourceLimits(BaseModel):
    """Resource ceilings applied at container creation."""

    memory: str | None = Field(default=None, description="Memory limit (e.g. '512m', '2g').")
    memory_reservation: str | None = Field(default=None, description="Soft memory limit.")
    memory_swap: str | None = Field(default=None, description="Memory + swap ceiling, '-1' for unlimited.")
    cpu: float | None = Field(default=None, ge=0.1, le=64, description="CPU quota in cores (``--cpus``).")
    cpu_shares: int | None = Field(default=None, ge=2, le=262144, description="Relative CPU weight.")
    pids_limit: int | None = Field(default=None, ge=1, description="Maximum number of processes.")

    @field_validator("memory", "memory_reservation")
    @classmethod
    def _check_memory(cls, value: str | None) -> str | None:
        if value is not None and not _MEMORY_PATTERN.match(value):
            raise ValueError(f"invalid memory value {value!r} (expected digits with optional k/m/g unit)")
        return value

    @field_validator("memory_swap")
    @classmethod
    def _check_memory_swap(cls, value: str | None) -> str | None:
        if value is not None and value != "-1" and not _MEMORY_PATTERN.match(value):
            raise ValueError(f"invalid memory swap value {value!r}")
        return value


class EnvironmentConfig(BaseModel):
    """Declarative description of a container to create."""

    image: str = Field(..., min_length=1, description="Base image reference.")

    dockerfile: str | None = Field(default=None, description="Dockerfile to build a custom image from.")
    build_context: str | None = Field(default=None, description="Build context directory.")
    image_tag: str | None = Field(default=None, description="Tag for the built image.")

    volumes: dict[str, str] = Field(default_factory=dict, description="Host path -> container path.")
    environment: dict[str, str] = Field(default_factory=dict, description="Environment variables.")
    resource_limits: ResourceLimits | None = Field(default=None, description="Resource ceilings.")
    network_mode: str | None = Field(default=None, description="Network mode or network name.")
    working_dir: str | None = Field(default=None, description="Working directory inside the container.")
    user: str | None = Field(default=None, description="User (and optional group) to run as.")
    labels: dict[str, str] = Field(default_factory=dict, description="Container labels.")
    entrypoint: list[str] = Field(default_factory=list, description="Entrypoint override.")
    command: list[str] = Field(default_factory=list, description="Command override.")
    auto_remove: bool = Field(default=False, description="Remove the container when it exits.")
    privileged: bool = Field(default=False, description="Run in privileged mode.")
    security_opts: list[str] = Field(default_factory=list, description="``--security-opt`` values.")
    cap_add: list[str] = Field(default_factory=list, description="Capabilities to add.")
    cap_drop: list[str] = Field(default_factory=list, description="Capabilities to drop.")

    @field_validator("network_mode", "working_dir", "user")
    @classmethod
    def _reject_empty(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("must not be empty when provided")
        return value


class CreationRequest(BaseModel):
    """A request to create (and optionally start) a task container."""

    config: EnvironmentConfig
    task_id: str = Field(..., min_length=1, description="Task the container belongs to.")
    auto_start: bool = Field(default=False, description="Start the container after creating it.")
    name_override: str | None = Field(default=None, description="Use this name verbatim.")


class ContainerInfo(BaseModel):
    """Snapshot of a container parsed from a single ``inspect`` line."""

    id: str
    name: str
    image: str
    status: ContainerStatus
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    exit_code: int | None = None


class OperationResult(BaseModel):
    """Outcome of a container lifecycle operation."""

    success: bool
    container_id: str | None = Field(default=None, description="Set when the operation succeeded.")
    command: str | None = Field(default=None, description="Display form of the executed command.")
    argv: list[str] = Field(default_factory=list, description="Exact argument vector executed.")
    error: str | None = Field(default=None, description="Set when the operation failed.")
    container_info: ContainerInfo | None = Field(default=None, description="Snapshot after a start.")
    output: str | None = Field(default=None, description="Raw stdout of the command.")
