"""Image subsystem: Dockerfile builds with content-hash caching."""

from apex_containers.images.builder import ImageBuilder, format_size, parse_size
from apex_containers.images.cache import ImageCacheStore
from apex_containers.images.models import (
    BuildResult,
    BuildSpec,
    ImageCache,
    ImageCacheMetadata,
    ImageInfo,
)

__all__ = [
    "BuildResult",
    "BuildSpec",
    "ImageBuilder",
    "ImageCache",
    "ImageCacheMetadata",
    "ImageCacheStore",
    "ImageInfo",
    "format_size",
    "parse_size",
]
