"""LRU + TTL caches in front of thumbnail generation and metadata reads"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from asset_processor import create_thumbnail
from models.asset import ImageMetadata
from models.errors import AssetNotFoundError

logger = logging.getLogger("AssetPipeline")

T = TypeVar("T")

DEFAULT_TTL = 3600.0  # 1 hour
DEFAULT_MAX_SIZE = 1000


@dataclass
class CacheEntry(Generic[T]):
    data: T
    timestamp: float
    ttl: float


class TTLCache(Generic[T]):
    """LRU cache bounded by entry count with per-entry TTL (seconds).

    Expired entries are dropped lazily when they are next read.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[T]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            if self._clock() - entry.timestamp > entry.ttl:
                del self._entries[key]
                self.misses += 1
                return None

            self._entries.move_to_end(key)
            self.hits += 1
            return entry.data

    def set(self, key: str, data: T, ttl: Optional[float] = None):
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted cache entry {evicted}")

            self._entries[key] = CacheEntry(
                data=data,
                timestamp=self._clock(),
                ttl=self.default_ttl if ttl is None else ttl,
            )
            self._entries.move_to_end(key)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with `prefix`. Returns count removed."""
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries


def thumbnail_key(canonical_path: str, size: int) -> str:
    return f"{canonical_path}-{size}"


class AssetCache:
    """Thumbnail and metadata caches for one pipeline instance"""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl: float = DEFAULT_TTL,
        thumbnail_quality: int = 80
    ):
        self.ttl = ttl
        self.thumbnail_quality = thumbnail_quality
        self.thumbnails: TTLCache[bytes] = TTLCache(max_size, ttl)
        self.metadata: TTLCache[ImageMetadata] = TTLCache(max_size, ttl)

    def get_thumbnail(self, image_path: Path, canonical_path: str, size: int) -> bytes:
        """Return a cached thumbnail or generate and cache one.

        Raises:
            AssetNotFoundError: If the source image does not exist
            ThumbnailError: If the source exists but cannot be thumbnailed
        """
        key = thumbnail_key(canonical_path, size)
        cached = self.thumbnails.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached

        if not image_path.is_file():
            raise AssetNotFoundError(f"Image file not found: {canonical_path}")

        thumbnail = create_thumbnail(image_path, size, self.thumbnail_quality)
        self.thumbnails.set(key, thumbnail, self.ttl)
        return thumbnail

    def get_metadata(self, canonical_path: str) -> Optional[ImageMetadata]:
        return self.metadata.get(canonical_path)

    def set_metadata(self, canonical_path: str, record: ImageMetadata):
        self.metadata.set(canonical_path, record, self.ttl)

    def invalidate(self, canonical_path: str):
        """Drop every thumbnail size variant and the metadata entry for a path"""
        removed = self.thumbnails.invalidate_prefix(thumbnail_key(canonical_path, ""))
        self.metadata.delete(canonical_path)
        if removed:
            logger.debug(f"Invalidated {removed} thumbnail(s) for {canonical_path}")

    def clear(self):
        self.thumbnails.clear()
        self.metadata.clear()

    def stats(self) -> Dict[str, Any]:
        return {
            "thumbnails": {
                "entries": len(self.thumbnails),
                "max_size": self.thumbnails.max_size,
                "hits": self.thumbnails.hits,
                "misses": self.thumbnails.misses,
            },
            "metadata": {
                "entries": len(self.metadata),
                "max_size": self.metadata.max_size,
                "hits": self.metadata.hits,
                "misses": self.metadata.misses,
            },
            "ttl_seconds": self.ttl,
        }
