"""ContainerManager: orchestrates build → create → start for task containers.

Uses the runtime CLI via subprocess with argument vectors only, following
:mod:`apex_containers.runtime.process`.

``create_container()``:
1. Ask the runtime selector for a runtime (``none`` fails the request).
2. Build a custom image when a Dockerfile is configured and present,
   falling back to ``config.image`` on any build problem.
3. ``<rt> create`` with the injected management labels.
4. Optionally ``<rt> start`` and ``<rt> inspect``; a failed start removes
   the container again.

Public operations never raise: failures come back as
:class:`OperationResult` with ``success=False``.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from apex_containers.containers.commands import (
    build_create_command,
    build_inspect_command,
    build_list_command,
    build_remove_command,
    build_start_command,
    build_stop_command,
    parse_inspect_output,
)
from apex_containers.containers.events import (
    LifecycleEvent,
    LifecycleNotifier,
    LifecycleOperation,
    Listener,
)
from apex_containers.containers.models import ContainerInfo, CreationRequest, EnvironmentConfig, OperationResult
from apex_containers.images.builder import ImageBuilder
from apex_containers.images.models import BuildSpec
from apex_containers.runtime.errors import CommandError, ContainerOrchestrationError
from apex_containers.runtime.process import CommandOutput, render_command, run_command
from apex_containers.runtime.selector import ContainerRuntime, RuntimeSelector, RuntimeType
from apex_containers.settings import ManagerSettings
from apex_containers.utils.telemetry import (
    ATTR_AUTO_START,
    ATTR_CONTAINER_ID,
    ATTR_CONTAINER_NAME,
    ATTR_IMAGE,
    ATTR_RUNTIME,
    ATTR_SUCCESS,
    ATTR_TASK_ID,
    get_tracer,
)

if TYPE_CHECKING:
    from opentelemetry.trace import Span

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

NO_RUNTIME_ERROR = "No container runtime available"

_TASK_ID_UNSAFE = re.compile(r"[^a-zA-Z0-9_.-]")
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def _describe(exc: BaseException) -> str:
    if isinstance(exc, CommandError):
        return exc.detail
    return str(exc) or exc.__class__.__name__


class ContainerManager:
    """Creates, starts and supervises containers for automated tasks.

    The :class:`ImageBuilder` is created on the first request that needs a
    build and shared by every later request. Lifecycle observers register
    through :meth:`subscribe`.
    """

    def __init__(
        self,
        runtime: RuntimeSelector | None = None,
        *,
        settings: ManagerSettings | None = None,
        project_root: str | Path | None = None,
        notifier: LifecycleNotifier | None = None,
    ) -> None:
        self._selector = runtime or ContainerRuntime()
        self._settings = settings or ManagerSettings()
        self._project_root = Path(project_root or Path.cwd()).resolve()
        self._notifier = notifier or LifecycleNotifier()
        self._image_builder: ImageBuilder | None = None

    @property
    def settings(self) -> ManagerSettings:
        return self._settings

    @property
    def notifier(self) -> LifecycleNotifier:
        return self._notifier

    @property
    def image_builder(self) -> ImageBuilder | None:
        """The shared builder, or ``None`` before the first build."""
        return self._image_builder

    def subscribe(
        self,
        listener: Listener,
        operation: LifecycleOperation | None = None,
    ) -> Callable[[], None]:
        """Observe ``created`` / ``started`` events, or all of them with ``None``."""
        return self._notifier.subscribe(listener, operation)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_container(self, request: CreationRequest) -> OperationResult:
        """Create (and optionally start) the container described by *request*."""
        emitted: set[LifecycleOperation] = set()

        with _tracer.start_as_current_span("container.create") as span:
            span.set_attribute(ATTR_TASK_ID, request.task_id)
            span.set_attribute(ATTR_AUTO_START, request.auto_start)
            try:
                result = await self._create(request, span, emitted)
            except Exception as exc:
                logger.exception("Container creation for task %s failed", request.task_id)
                result = OperationResult(
                    success=False,
                    error=f"Container creation failed: {_describe(exc)}",
                )
                if LifecycleOperation.CREATED not in emitted:
                    self._emit(LifecycleOperation.CREATED, request.task_id, result, emitted)
                elif request.auto_start and LifecycleOperation.STARTED not in emitted:
                    self._emit(LifecycleOperation.STARTED, request.task_id, result, emitted)

            span.set_attribute(ATTR_SUCCESS, result.success)
            return result

    async def _create(
        self,
        request: CreationRequest,
        span: Span,
        emitted: set[LifecycleOperation],
    ) -> OperationResult:
        runtime = await self._selector.best_runtime()
        span.set_attribute(ATTR_RUNTIME, runtime.value)
        if runtime is RuntimeType.NONE:
            logger.error("No container runtime available for task %s", request.task_id)
            result = OperationResult(success=False, error=NO_RUNTIME_ERROR)
            self._emit(LifecycleOperation.CREATED, request.task_id, result, emitted)
            return result

        config = request.config
        image = await self._resolve_image(config)
        name = request.name_override or self.generate_container_name(request.task_id)
        span.set_attribute(ATTR_IMAGE, image)
        span.set_attribute(ATTR_CONTAINER_NAME, name)

        argv = build_create_command(
            runtime.value,
            config,
            image,
            name,
            extra_labels={
                self._settings.managed_label: "true",
                self._settings.name_label: name,
            },
        )
        command = render_command(argv)

        try:
            output = await self._run_command(argv, timeout=self._settings.create_timeout)
        except CommandError as exc:
            logger.error("Creating container %s failed: %s", name, exc.detail)
            result = OperationResult(
                success=False,
                command=command,
                argv=argv,
                error=f"Container creation failed: {exc.detail}",
            )
            self._emit(LifecycleOperation.CREATED, request.task_id, result, emitted)
            return result

        container_id = output.stdout.strip()
        span.set_attribute(ATTR_CONTAINER_ID, container_id)
        logger.info("Created container %s (%s) for task %s", name, container_id, request.task_id)
        created = OperationResult(
            success=True,
            container_id=container_id,
            command=command,
            argv=argv,
            output=output.stdout,
        )
        self._emit(LifecycleOperation.CREATED, request.task_id, created, emitted)

        if not request.auto_start:
            return created

        started = await self._start(runtime, container_id)
        if not started.success:
            await self._compensate(runtime, container_id)
            self._emit(
                LifecycleOperation.STARTED,
                request.task_id,
                started,
                emitted,
                container_id=container_id,
            )
            return started

        self._emit(LifecycleOperation.STARTED, request.task_id, started, emitted)
        return created.model_copy(update={"container_info": started.container_info})

    async def _resolve_image(self, config: EnvironmentConfig) -> str:
        """Return the built tag, or ``config.image`` when no build applies or it fails."""
        if not config.dockerfile:
            return config.image

        dockerfile = self._resolve_path(config.dockerfile)
        if not dockerfile.exists():
            logger.info("Dockerfile %s not found, using image %s", dockerfile, config.image)
            return config.image

        try:
            builder = self._get_image_builder()
            await builder.initialize()
            result = await builder.build_image(
                BuildSpec(
                    dockerfile_path=str(dockerfile),
                    build_context=config.build_context,
                    image_tag=config.image_tag,
                )
            )
        except Exception as exc:
            logger.warning(
                "Image build from %s raised %s, falling back to %s",
                dockerfile,
                _describe(exc),
                config.image,
            )
            return config.image

        if not result.success or result.image_info is None:
            logger.warning(
                "Image build from %s failed (%s), falling back to %s",
                dockerfile,
                result.error,
                config.image,
            )
            return config.image

        return result.image_info.tag

    def _get_image_builder(self) -> ImageBuilder:
        # No await between the check and the assignment: one instance per manager.
        if self._image_builder is None:
            self._image_builder = ImageBuilder(
                self._project_root,
                runtime=self._selector,
                settings=self._settings,
            )
        return self._image_builder

    async def _compensate(self, runtime: RuntimeType, container_id: str) -> None:
        """Remove a container whose start failed. Errors are logged only."""
        argv = build_remove_command(runtime.value, container_id)
        try:
            await self._run_command(argv, timeout=self._settings.remove_timeout)
        except Exception as exc:
            logger.warning("Cleanup of container %s failed: %s", container_id, _describe(exc))
        else:
            logger.info("Removed container %s after failed start", container_id)

    def _emit(
        self,
        operation: LifecycleOperation,
        task_id: str,
        result: OperationResult,
        emitted: set[LifecycleOperation],
        *,
        container_id: str | None = None,
    ) -> None:
        emitted.add(operation)
        self._notifier.emit(
            LifecycleEvent(
                operation=operation,
                task_id=task_id,
                success=result.success,
                container_id=container_id or result.container_id,
                command=result.command,
                error=result.error,
                timestamp=self._notifier.timestamp(),
            )
        )

    # ------------------------------------------------------------------
    # Individual lifecycle operations
    # ------------------------------------------------------------------

    async def start_container(self, container_id: str) -> OperationResult:
        runtime = await self._selector.best_runtime()
        if runtime is RuntimeType.NONE:
            return OperationResult(success=False, error=NO_RUNTIME_ERROR)
        try:
            return await self._start(runtime, container_id)
        except Exception as exc:
            return OperationResult(success=False, error=f"Container start failed: {_describe(exc)}")

    async def _start(self, runtime: RuntimeType, container_id: str) -> OperationResult:
        argv = build_start_command(runtime.value, container_id)
        command = render_command(argv)

        with _tracer.start_as_current_span("container.start") as span:
            span.set_attribute(ATTR_CONTAINER_ID, container_id)
            try:
                output = await self._run_command(argv, timeout=self._settings.start_timeout)
            except Exception as exc:
                logger.error("Starting container %s failed: %s", container_id, _describe(exc))
                span.set_attribute(ATTR_SUCCESS, False)
                return OperationResult(
                    success=False,
                    command=command,
                    argv=argv,
                    error=f"Container start failed: {_describe(exc)}",
                )

            span.set_attribute(ATTR_SUCCESS, True)
            logger.info("Started container %s", container_id)
            info = await self._inspect(runtime, container_id)
            return OperationResult(
                success=True,
                container_id=container_id,
                command=command,
                argv=argv,
                container_info=info,
                output=output.stdout,
            )

    async def stop_container(self, container_id: str, timeout: int = 10) -> OperationResult:
        """Stop a container, giving it *timeout* seconds before it is killed."""
        runtime = await self._selector.best_runtime()
        if runtime is RuntimeType.NONE:
            return OperationResult(success=False, error=NO_RUNTIME_ERROR)

        argv = build_stop_command(runtime.value, container_id, timeout)
        try:
            output = await self._run_command(argv, timeout=timeout + self._settings.start_timeout)
        except ContainerOrchestrationError as exc:
            return OperationResult(
                success=False,
                command=render_command(argv),
                argv=argv,
                error=f"Container stop failed: {_describe(exc)}",
            )
        return OperationResult(
            success=True,
            container_id=container_id,
            command=render_command(argv),
            argv=argv,
            output=output.stdout,
        )

    async def remove_container(self, container_id: str, force: bool = False) -> OperationResult:
        runtime = await self._selector.best_runtime()
        if runtime is RuntimeType.NONE:
            return OperationResult(success=False, error=NO_RUNTIME_ERROR)

        argv = build_remove_command(runtime.value, container_id, force=force)
        try:
            output = await self._run_command(argv, timeout=self._settings.remove_timeout)
        except ContainerOrchestrationError as exc:
            return OperationResult(
                success=False,
                command=render_command(argv),
                argv=argv,
                error=f"Container removal failed: {_describe(exc)}",
            )
        return OperationResult(
            success=True,
            container_id=container_id,
            command=render_command(argv),
            argv=argv,
            output=output.stdout,
        )

    async def get_container_info(self, container_id: str) -> ContainerInfo | None:
        """Inspect *container_id*; ``None`` if it is unknown or unparseable."""
        runtime = await self._selector.best_runtime()
        if runtime is RuntimeType.NONE:
            return None
        return await self._inspect(runtime, container_id)

    async def list_containers(self, include_exited: bool = False) -> list[ContainerInfo]:
        """Snapshots of every container carrying the management label."""
        runtime = await self._selector.best_runtime()
        if runtime is RuntimeType.NONE:
            return []

        argv = build_list_command(
            runtime.value,
            f"{self._settings.managed_label}=true",
            include_exited=include_exited,
        )
        try:
            output = await self._run_command(argv, timeout=self._settings.inspect_timeout)
        except ContainerOrchestrationError as exc:
            logger.warning("Listing containers failed: %s", _describe(exc))
            return []

        containers: list[ContainerInfo] = []
        for line in output.stdout.splitlines():
            container_id = line.strip()
            if not container_id:
                continue
            info = await self._inspect(runtime, container_id)
            if info is not None:
                containers.append(info)
        return containers

    async def _inspect(self, runtime: RuntimeType, container_id: str) -> ContainerInfo | None:
        argv = build_inspect_command(runtime.value, container_id)
        try:
            output = await self._run_command(argv, timeout=self._settings.inspect_timeout)
        except Exception as exc:
            logger.warning("Inspecting container %s failed: %s", container_id, _describe(exc))
            return None
        return parse_inspect_output(output.stdout, container_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def generate_container_name(self, task_id: str) -> str:
        """Name for a task container, ``apex-<task_id>`` with default settings."""
        cfg = self._settings
        parts = [cfg.name_prefix]
        if cfg.include_task_id:
            parts.append(_TASK_ID_UNSAFE.sub("_", task_id))
        if cfg.include_timestamp:
            parts.append(_base36(int(time.time() * 1000)))
        return cfg.name_separator.join(part for part in parts if part)

    def _resolve_path(self, path: str) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self._project_root / candidate
        return candidate

    async def _run_command(self, argv: list[str], *, timeout: float) -> CommandOutput:
        return await run_command(argv, timeout=timeout)
