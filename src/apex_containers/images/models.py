"""Data models for image building and the build cache."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

CACHE_VERSION = "1.0"


class BuildSpec(BaseModel):
    """What to build and how."""

    dockerfile_path: str = Field(..., min_length=1, description="Dockerfile path, relative to the project root.")
    build_context: str | None = Field(default=None, description="Build context; defaults to the Dockerfile's directory.")
    image_tag: str | None = Field(default=None, description="Target tag; defaults to a project-derived tag.")
    build_args: dict[str, str] = Field(default_factory=dict, description="``--build-arg`` values.")
    target: str | None = Field(default=None, description="Multi-stage build target.")
    platform: str | None = Field(default=None, description="Target platform, e.g. 'linux/arm64'.")
    no_cache: bool = Field(default=False, description="Disable the runtime's layer cache.")
    force_rebuild: bool = Field(default=False, description="Build even when the Dockerfile is unchanged.")


class ImageInfo(BaseModel):
    """Metadata about a built (or missing) image."""

    tag: str
    id: str = ""
    created: datetime | None = None
    exists: bool = False
    size: int | None = None
    size_formatted: str | None = None
    dockerfile_hash: str | None = None


class BuildResult(BaseModel):
    """Outcome of :meth:`ImageBuilder.build_image`. Never raised, always returned."""

    success: bool
    image_info: ImageInfo | None = None
    error: str | None = None
    build_output: str = Field(default="", description="Build log text (partial on failure).")
    build_duration: float = Field(default=0.0, description="Elapsed seconds.")
    rebuilt: bool = Field(default=False, description="False for a cache hit or a failed build.")


class ImageCacheMetadata(BaseModel):
    """Cached record of the last successful build of a tag."""

    image_tag: str
    dockerfile_hash: str
    dockerfile_path: str = ""
    image_id: str = ""
    image_size: int | None = None
    build_duration: float = 0.0
    build_timestamp: float = Field(default=0.0, description="Epoch seconds of the build.")
    build_context: str = "."
    last_accessed: float = Field(default=0.0, description="Epoch seconds of the last cache lookup.")


class ImageCache(BaseModel):
    """On-disk image cache document."""

    version: str = CACHE_VERSION
    images: dict[str, ImageCacheMetadata] = Field(default_factory=dict)
