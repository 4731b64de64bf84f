"""JSON-file persistence for image build metadata."""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING

from pydantic import ValidationError

from apex_containers.images.models import CACHE_VERSION, ImageCache, ImageCacheMetadata

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class ImageCacheStore:
    """Read-modify-write store for :class:`ImageCache` documents.

    A missing or unreadable file is treated as an empty cache. Write
    failures are logged and never raised: losing the cache only costs a
    rebuild.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ImageCache:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ImageCache()
        except OSError as exc:
            logger.warning("Cannot read image cache %s: %s", self._path, exc)
            return ImageCache()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Image cache %s is corrupted, starting fresh: %s", self._path, exc)
            return ImageCache()

        if not isinstance(data, dict):
            logger.warning("Image cache %s is not a mapping, starting fresh", self._path)
            return ImageCache()

        version = data.get("version")
        if version != CACHE_VERSION:
            logger.warning(
                "Image cache version %s may be incompatible. Expected %s.",
                version,
                CACHE_VERSION,
            )

        raw_images = data.get("images") or {}
        if not isinstance(raw_images, dict):
            logger.warning("Image cache %s has no image mapping, starting fresh", self._path)
            raw_images = {}

        images: dict[str, ImageCacheMetadata] = {}
        for tag, entry in raw_images.items():
            if isinstance(entry, dict):
                entry = {"image_tag": tag, **entry}
            try:
                images[tag] = ImageCacheMetadata.model_validate(entry)
            except ValidationError:
                logger.warning("Dropping malformed image cache entry for %s", tag)

        return ImageCache(version=str(version or CACHE_VERSION), images=images)

    def save(self, cache: ImageCache) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(cache.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Cannot write image cache %s: %s", self._path, exc)

    def get(self, image_tag: str) -> ImageCacheMetadata | None:
        """Return the entry for *image_tag*, refreshing its access time."""
        cache = self.load()
        entry = cache.images.get(image_tag)
        if entry is None:
            return None
        entry.last_accessed = time.time()
        self.save(cache)
        return entry

    def store(self, metadata: ImageCacheMetadata) -> None:
        cache = self.load()
        cache.images[metadata.image_tag] = metadata
        self.save(cache)

    def remove(self, image_tag: str) -> bool:
        cache = self.load()
        if cache.images.pop(image_tag, None) is None:
            return False
        self.save(cache)
        return True

    def cleanup(self, max_entries: int = 50) -> int:
        """Evict least recently accessed entries beyond *max_entries*."""
        cache = self.load()
        excess = len(cache.images) - max_entries
        if excess <= 0:
            return 0

        by_age = sorted(cache.images.items(), key=lambda item: item[1].last_accessed)
        for tag, _entry in by_age[:excess]:
            del cache.images[tag]
        self.save(cache)
        return excess
