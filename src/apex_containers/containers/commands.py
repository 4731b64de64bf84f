"""Runtime CLI command construction and output parsing.

Every builder here returns an argument vector. Values are never quoted or
escaped: they travel to the runtime as discrete ``argv`` entries.
"""

from __future__ import annotations

from collections.abc import Mapping

from apex_containers.containers.models import (
    ContainerInfo,
    ContainerStatus,
    EnvironmentConfig,
    ResourceLimits,
)
from apex_containers.utils.timestamps import NO_VALUE, parse_timestamp

INSPECT_FORMAT = (
    "{{.Id}}|{{.Name}}|{{.Config.Image}}|{{.State.Status}}|{{.Created}}"
    "|{{.State.StartedAt}}|{{.State.FinishedAt}}|{{.State.ExitCode}}"
)

_STATUS_ALIASES: dict[str, ContainerStatus] = {
    "created": ContainerStatus.CREATED,
    "running": ContainerStatus.RUNNING,
    "up": ContainerStatus.RUNNING,
    "paused": ContainerStatus.PAUSED,
    "restarting": ContainerStatus.RESTARTING,
    "removing": ContainerStatus.REMOVING,
    "exited": ContainerStatus.EXITED,
    "stopped": ContainerStatus.EXITED,
    "dead": ContainerStatus.DEAD,
}


def build_create_command(
    runtime: str,
    config: EnvironmentConfig,
    image: str,
    container_name: str,
    *,
    extra_labels: Mapping[str, str] | None = None,
) -> list[str]:
    """Build the ``<runtime> create`` argument vector.

    *image* is the resolved image (built tag or ``config.image``). Labels
    from *extra_labels* override user labels with the same key so every
    key is emitted exactly once.
    """
    cmd: list[str] = [runtime, "create"]

    if config.auto_remove:
        cmd.append("--rm")
    if config.privileged:
        cmd.append("--privileged")

    for host_path, container_path in config.volumes.items():
        cmd.extend(["-v", f"{host_path}:{container_path}"])

    for key, value in config.environment.items():
        cmd.extend(["-e", f"{key}={value}"])

    if config.resource_limits is not None:
        cmd.extend(build_resource_args(config.resource_limits))

    if config.network_mode:
        cmd.extend(["--network", config.network_mode])
    if config.working_dir:
        cmd.extend(["-w", config.working_dir])
    if config.user:
        cmd.extend(["--user", config.user])

    labels = {**config.labels, **(extra_labels or {})}
    for key, value in labels.items():
        cmd.extend(["--label", f"{key}={value}"])

    for opt in config.security_opts:
        cmd.extend(["--security-opt", opt])
    for cap in config.cap_add:
        cmd.extend(["--cap-add", cap])
    for cap in config.cap_drop:
        cmd.extend(["--cap-drop", cap])

    # --entrypoint takes a single executable; remaining entrypoint tokens
    # become the leading arguments after the image.
    entrypoint_args: list[str] = []
    if config.entrypoint:
        cmd.extend(["--entrypoint", config.entrypoint[0]])
        entrypoint_args = config.entrypoint[1:]

    cmd.extend(["--name", container_name, image])
    cmd.extend(entrypoint_args)
    cmd.extend(config.command)
    return cmd


def build_resource_args(limits: ResourceLimits) -> list[str]:
    """Translate :class:`ResourceLimits` into runtime flags."""
    args: list[str] = []
    if limits.memory:
        args.extend(["--memory", limits.memory])
    if limits.memory_reservation:
        args.extend(["--memory-reservation", limits.memory_reservation])
    if limits.memory_swap:
        args.extend(["--memory-swap", limits.memory_swap])
    if limits.cpu is not None:
        args.extend(["--cpus", _format_number(limits.cpu)])
    if limits.cpu_shares is not None:
        args.extend(["--cpu-shares", str(limits.cpu_shares)])
    if limits.pids_limit is not None:
        args.extend(["--pids-limit", str(limits.pids_limit)])
    return args


def build_start_command(runtime: str, container_id: str) -> list[str]:
    return [runtime, "start", container_id]


def build_stop_command(runtime: str, container_id: str, timeout: int = 10) -> list[str]:
    return [runtime, "stop", "--time", str(timeout), container_id]


def build_remove_command(runtime: str, container_id: str, *, force: bool = False) -> list[str]:
    cmd = [runtime, "rm"]
    if force:
        cmd.append("--force")
    cmd.append(container_id)
    return cmd


def build_inspect_command(runtime: str, container_id: str) -> list[str]:
    return [runtime, "inspect", "--format", INSPECT_FORMAT, container_id]


def build_list_command(runtime: str, label: str, *, include_exited: bool = False) -> list[str]:
    cmd = [runtime, "ps", "--filter", f"label={label}", "--format", "{{.ID}}"]
    if include_exited:
        cmd.insert(2, "--all")
    return cmd


def parse_inspect_output(output: str, fallback_id: str) -> ContainerInfo | None:
    """Parse the single pipe-delimited ``inspect`` line.

    Returns ``None`` when the line has fewer than four fields.
    """
    parts = output.strip().split("|")
    if len(parts) < 4:
        return None

    def _field(index: int) -> str:
        return parts[index].strip() if index < len(parts) else ""

    return ContainerInfo(
        id=_field(0) or fallback_id,
        name=_field(1).lstrip("/") or fallback_id,
        image=_field(2) or "unknown",
        status=parse_container_status(_field(3) or "unknown"),
        created_at=parse_timestamp(_field(4)),
        started_at=parse_timestamp(_field(5)),
        finished_at=parse_timestamp(_field(6)),
        exit_code=_parse_exit_code(_field(7)),
    )


def parse_container_status(value: str) -> ContainerStatus:
    """Normalise a runtime status string, falling back to ``exited``."""
    status = value.strip().lower()
    if status in _STATUS_ALIASES:
        return _STATUS_ALIASES[status]
    if "up" in status or "running" in status:
        return ContainerStatus.RUNNING
    return ContainerStatus.EXITED


def _parse_exit_code(value: str) -> int | None:
    if not value or value == NO_VALUE:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
