"""Image cache module.

This module handles:
- Saving built images to target-keyed archives
- Restoring archives into the local image store before resolution
"""

from cross_imagegen.cache.archive import ArchiveCacheStore, CacheStore, NullCacheStore
from cross_imagegen.cache.models import CacheEntry

__all__ = ["ArchiveCacheStore", "CacheEntry", "CacheStore", "NullCacheStore"]
