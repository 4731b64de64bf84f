"""ImageBuilder: builds task images from Dockerfiles with content-hash caching.

A build is skipped when the Dockerfile's SHA-256 matches the hash recorded
for the target tag and the image is still present in the runtime.
:meth:`ImageBuilder.build_image` never raises: every failure comes back as
a :class:`BuildResult` with ``success=False``.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import time
from pathlib import Path

from apex_containers.images.cache import ImageCacheStore
from apex_containers.images.models import BuildResult, BuildSpec, ImageCacheMetadata, ImageInfo
from apex_containers.runtime.errors import (
    CommandError,
    ContainerOrchestrationError,
    DockerfileReadError,
    RuntimeUnavailableError,
)
from apex_containers.runtime.process import CommandOutput, run_command
from apex_containers.runtime.selector import ContainerRuntime, RuntimeSelector, RuntimeType
from apex_containers.settings import ManagerSettings
from apex_containers.utils.telemetry import ATTR_IMAGE_TAG, ATTR_REBUILT, ATTR_SUCCESS, get_tracer
from apex_containers.utils.timestamps import parse_timestamp

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

CACHE_HIT_MESSAGE = "Using cached image (no Dockerfile changes detected)"

_IMAGE_INSPECT_FORMAT = "{{.Id}}|{{.Created}}|{{.Size}}"
_IMAGE_LIST_FORMAT = "{{.Repository}}:{{.Tag}}|{{.ID}}|{{.CreatedAt}}|{{.Size}}"
_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")
_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(B|KB|MB|GB|TB)$", re.IGNORECASE)
_INFO_QUERY_TIMEOUT = 10.0


def format_size(size: int) -> str:
    """Human-readable size: ``512B``, ``1.5KB``, ``128.0MB``."""
    if size < 1024:
        return f"{size}B"
    value = float(size)
    for unit in _SIZE_UNITS[1:]:
        value /= 1024
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            return f"{value:.1f}{unit}"
    return f"{size}B"  # pragma: no cover


def parse_size(text: str) -> int | None:
    """Inverse of :func:`format_size`; ``None`` for anything without a unit."""
    match = _SIZE_PATTERN.match(text.strip())
    if not match:
        return None
    number, unit = match.groups()
    return round(float(number) * 1024 ** _SIZE_UNITS.index(unit.upper()))


def _short_id(image_id: str) -> str:
    return image_id.strip().removeprefix("sha256:")[:12]


def _join_output(stdout: str, stderr: str) -> str:
    return "\n".join(part for part in (stdout.strip(), stderr.strip()) if part)


class ImageBuilder:
    """Builds and inspects images for one project root.

    Relative Dockerfile and context paths resolve against *project_root*.
    The build cache lives at ``<project_root>/.apex/image-cache.json``.
    """

    def __init__(
        self,
        project_root: str | Path,
        *,
        runtime: RuntimeSelector | None = None,
        settings: ManagerSettings | None = None,
    ) -> None:
        self._project_root = Path(project_root).resolve()
        self._selector = runtime or ContainerRuntime()
        self._settings = settings or ManagerSettings()
        self._runtime: RuntimeType | None = None
        self._cache = ImageCacheStore(
            self._project_root / self._settings.cache_dir / self._settings.cache_file
        )

    @property
    def project_root(self) -> Path:
        return self._project_root

    @property
    def runtime(self) -> RuntimeType | None:
        return self._runtime

    @property
    def cache(self) -> ImageCacheStore:
        return self._cache

    async def initialize(self, preferred: RuntimeType | None = None) -> RuntimeType:
        """Resolve the runtime used for builds. Safe to call repeatedly.

        Raises:
            RuntimeUnavailableError: Neither docker nor podman is usable.
        """
        if self._runtime is not None:
            return self._runtime

        runtime = await self._selector.best_runtime(preferred)
        if runtime is RuntimeType.NONE:
            raise RuntimeUnavailableError()

        self._runtime = runtime
        logger.debug("ImageBuilder using %s for %s", runtime.value, self._project_root)
        return runtime

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    async def build_image(self, spec: BuildSpec) -> BuildResult:
        """Build (or reuse) the image described by *spec*."""
        started = time.monotonic()
        with _tracer.start_as_current_span("image.build") as span:
            try:
                result = await self._build(spec, started)
            except CommandError as exc:
                logger.warning("Image build for %s failed: %s", spec.dockerfile_path, exc.detail)
                result = BuildResult(
                    success=False,
                    error=f"Image build failed: {exc.detail}",
                    build_output=_join_output(exc.stdout, exc.stderr),
                    build_duration=time.monotonic() - started,
                )
            except Exception as exc:
                logger.warning("Image build for %s failed: %s", spec.dockerfile_path, exc)
                result = BuildResult(
                    success=False,
                    error=str(exc) or exc.__class__.__name__,
                    build_duration=time.monotonic() - started,
                )

            if result.image_info is not None:
                span.set_attribute(ATTR_IMAGE_TAG, result.image_info.tag)
            span.set_attribute(ATTR_SUCCESS, result.success)
            span.set_attribute(ATTR_REBUILT, result.rebuilt)
            return result

    async def _build(self, spec: BuildSpec, started: float) -> BuildResult:
        runtime = await self.initialize()

        dockerfile = self._resolve(spec.dockerfile_path)
        context = self._resolve(spec.build_context) if spec.build_context else dockerfile.parent
        tag = spec.image_tag or self.generate_project_tag(spec.dockerfile_path)
        dockerfile_hash = await asyncio.to_thread(self.calculate_dockerfile_hash, spec.dockerfile_path)

        if not spec.force_rebuild:
            cached = await self._cached_image(tag, dockerfile_hash)
            if cached is not None:
                logger.info("Reusing image %s (Dockerfile unchanged)", tag)
                return BuildResult(
                    success=True,
                    image_info=cached,
                    build_output=CACHE_HIT_MESSAGE,
                    build_duration=time.monotonic() - started,
                    rebuilt=False,
                )

        argv = self.build_build_command(runtime.value, dockerfile, context, tag, spec)
        logger.info("Building image %s from %s", tag, dockerfile)
        output = await self._run_command(argv, timeout=self._settings.build_timeout)
        duration = time.monotonic() - started

        info = await self.get_image_info(tag)
        info = info.model_copy(update={"dockerfile_hash": dockerfile_hash})

        now = time.time()
        metadata = ImageCacheMetadata(
            image_tag=tag,
            dockerfile_hash=dockerfile_hash,
            dockerfile_path=str(dockerfile),
            image_id=info.id,
            image_size=info.size,
            build_duration=duration,
            build_timestamp=now,
            build_context=str(context),
            last_accessed=now,
        )
        await asyncio.to_thread(self._store_in_cache, metadata)

        return BuildResult(
            success=True,
            image_info=info,
            build_output=_join_output(output.stdout, output.stderr),
            build_duration=duration,
            rebuilt=True,
        )

    def _store_in_cache(self, metadata: ImageCacheMetadata) -> None:
        self._cache.store(metadata)
        self._cache.cleanup(self._settings.cache_max_entries)

    async def _cached_image(self, tag: str, dockerfile_hash: str) -> ImageInfo | None:
        entry = await asyncio.to_thread(self._cache.get, tag)
        if entry is None or entry.dockerfile_hash != dockerfile_hash:
            return None

        info = await self.get_image_info(tag)
        if not info.exists or (entry.image_id and _short_id(entry.image_id) != info.id):
            logger.info("Cached image %s is stale, rebuilding", tag)
            await asyncio.to_thread(self._cache.remove, tag)
            return None

        return info.model_copy(update={"dockerfile_hash": dockerfile_hash})

    def build_build_command(
        self,
        runtime: str,
        dockerfile: Path,
        context: Path,
        tag: str,
        spec: BuildSpec,
    ) -> list[str]:
        cmd = [runtime, "build", "-f", str(dockerfile), "-t", tag]
        for key, value in spec.build_args.items():
            cmd.extend(["--build-arg", f"{key}={value}"])
        if spec.target:
            cmd.extend(["--target", spec.target])
        if spec.platform:
            cmd.extend(["--platform", spec.platform])
        if spec.no_cache:
            cmd.append("--no-cache")
        cmd.append(str(context))
        return cmd

    def generate_project_tag(self, dockerfile_path: str) -> str:
        """Deterministic tag derived from the project root and Dockerfile path."""
        digest = hashlib.sha256(f"{self._project_root}:{dockerfile_path}".encode()).hexdigest()
        return f"{self._settings.project_tag_prefix}{digest[:8]}:latest"

    def calculate_dockerfile_hash(self, dockerfile_path: str) -> str:
        """SHA-256 hex digest of the Dockerfile's raw bytes.

        Raises:
            DockerfileReadError: The file cannot be read.
        """
        path = self._resolve(dockerfile_path)
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise DockerfileReadError(str(path), exc.strerror or str(exc)) from exc
        return hashlib.sha256(content).hexdigest()

    # ------------------------------------------------------------------
    # Queries and housekeeping
    # ------------------------------------------------------------------

    async def image_exists(self, tag: str) -> bool:
        try:
            runtime = await self.initialize()
            await self._run_command(
                [runtime.value, "image", "inspect", "--format", "{{.Id}}", tag],
                timeout=_INFO_QUERY_TIMEOUT,
            )
        except ContainerOrchestrationError:
            return False
        return True

    async def get_image_info(self, tag: str) -> ImageInfo:
        """Inspect *tag*; a missing image yields ``ImageInfo(exists=False)``."""
        try:
            runtime = await self.initialize()
            output = await self._run_command(
                [runtime.value, "image", "inspect", "--format", _IMAGE_INSPECT_FORMAT, tag],
                timeout=_INFO_QUERY_TIMEOUT,
            )
        except ContainerOrchestrationError:
            return ImageInfo(tag=tag, exists=False)

        parts = output.stdout.strip().split("|")
        if len(parts) < 3:
            return ImageInfo(tag=tag, exists=False)

        raw_size = parts[2].strip()
        size = int(raw_size) if raw_size.isdigit() else None
        return ImageInfo(
            tag=tag,
            id=_short_id(parts[0]),
            created=parse_timestamp(parts[1]),
            exists=True,
            size=size,
            size_formatted=format_size(size) if size is not None else None,
        )

    async def remove_image(self, tag: str) -> bool:
        """Remove *tag* and its cache entry. Returns ``False`` on failure."""
        try:
            runtime = await self.initialize()
            await self._run_command([runtime.value, "rmi", tag], timeout=self._settings.remove_timeout)
        except ContainerOrchestrationError as exc:
            logger.debug("Could not remove image %s: %s", tag, exc)
            return False

        await asyncio.to_thread(self._cache.remove, tag)
        return True

    async def list_project_images(self) -> list[ImageInfo]:
        """List images whose tag carries the project tag prefix."""
        try:
            runtime = await self.initialize()
            output = await self._run_command(
                [
                    runtime.value,
                    "images",
                    "--filter",
                    f"reference={self._settings.project_tag_prefix}*",
                    "--format",
                    _IMAGE_LIST_FORMAT,
                ],
                timeout=_INFO_QUERY_TIMEOUT,
            )
        except ContainerOrchestrationError:
            return []

        images: list[ImageInfo] = []
        for line in output.stdout.splitlines():
            parts = line.strip().split("|")
            if len(parts) < 4 or parts[0].upper().startswith("REPOSITORY"):
                continue
            images.append(
                ImageInfo(
                    tag=parts[0],
                    id=parts[1],
                    created=parse_timestamp(parts[2]),
                    exists=True,
                    size=parse_size(parts[3]),
                    size_formatted=parts[3],
                )
            )
        return images

    async def cleanup_old_images(self, keep_count: int = 5) -> int:
        """Remove all but the *keep_count* newest project images.

        Returns the number of images actually removed.
        """
        images = await self.list_project_images()
        if len(images) <= keep_count:
            return 0

        newest_first = sorted(
            images,
            key=lambda img: img.created.timestamp() if img.created else float("-inf"),
            reverse=True,
        )
        removed = 0
        for image in newest_first[keep_count:]:
            if await self.remove_image(image.tag):
                removed += 1
        return removed

    def _resolve(self, path: str) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self._project_root / candidate
        return candidate.resolve()

    async def _run_command(self, argv: list[str], *, timeout: float) -> CommandOutput:
        return await run_command(argv, timeout=timeout)
