"""Target-keyed image cache archives.

This module handles:
- Serializing a built image and its local layers to a gzip archive
- Restoring an archive into the local image store
- Manifest bookkeeping (recipe hash, layers, checksum) per archive

Restore is best-effort by contract: a missing or stale entry returns False,
and a corrupt one raises CacheRestoreError, which callers treat as a miss.
"""

from __future__ import annotations

import gzip
import logging
import os
import tempfile
import zlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from cross_imagegen.cache.models import CacheEntry
from cross_imagegen.errors import (
    CachePersistError,
    CacheRestoreError,
    DockerCommandError,
    UnknownTargetError,
)
from cross_imagegen.images.docker import DockerClient
from cross_imagegen.targets.recipe_hash import compute_file_sha256
from cross_imagegen.targets.schema import is_valid_target_id
from cross_imagegen.types import ImageRef

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"
MANIFEST_SUFFIX = ".json"


class CacheStore(Protocol):
    """Pre/post hooks around a target build."""

    def restore(self, target: str, recipe_hash: str | None = None) -> bool:
        """Load a target's cache entry into the local image store.

        Returns:
            True if an entry was loaded, False if there was nothing usable.

        Raises:
            CacheRestoreError: If an entry exists but could not be loaded.
        """
        ...

    def persist(self, target: str, image: ImageRef, recipe_hash: str) -> CacheEntry | None:
        """Serialize a freshly built image for later runs.

        Raises:
            CachePersistError: If the image could not be serialized.
        """
        ...


class NullCacheStore:
    """Cache store that never holds anything."""

    def restore(self, target: str, recipe_hash: str | None = None) -> bool:
        return False

    def persist(self, target: str, image: ImageRef, recipe_hash: str) -> CacheEntry | None:
        return None


class ArchiveCacheStore:
    """Cache store writing one gzip'd `docker save` archive per target."""

    def __init__(self, cache_dir: Path, docker: DockerClient) -> None:
        self.cache_dir = cache_dir
        self.docker = docker

    def _entry_path(self, target: str, suffix: str) -> Path:
        # Target ids never contain path separators
        if not is_valid_target_id(target):
            raise UnknownTargetError(target)
        return self.cache_dir / f"{target}{suffix}"

    def archive_path(self, target: str) -> Path:
        return self._entry_path(target, ARCHIVE_SUFFIX)

    def manifest_path(self, target: str) -> Path:
        return self._entry_path(target, MANIFEST_SUFFIX)

    def read_entry(self, target: str) -> CacheEntry | None:
        """Read a target's manifest, or None if absent or unreadable."""
        path = self.manifest_path(target)
        if not path.is_file():
            return None
        try:
            return CacheEntry.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("[%s] Ignoring unreadable cache manifest %s: %s", target, path, e)
            return None

    def restore(self, target: str, recipe_hash: str | None = None) -> bool:
        archive = self.archive_path(target)
        if not archive.is_file():
            logger.info("[%s] No cache entry at %s", target, archive)
            return False

        entry = self.read_entry(target)
        if recipe_hash is not None and entry is not None and entry.recipe_hash != recipe_hash:
            logger.info(
                "[%s] Cache entry is stale (recipe %s, expected %s)",
                target,
                entry.recipe_hash[:19],
                recipe_hash[:19],
            )
            return False

        if entry is not None and entry.sha256:
            try:
                actual = compute_file_sha256(archive)
            except OSError as e:
                raise CacheRestoreError(
                    target, f"Failed to read cache entry {archive}: {e}"
                ) from e
            if actual != entry.sha256:
                raise CacheRestoreError(
                    target, f"Checksum mismatch for cache entry {archive}"
                )

        logger.info("[%s] Restoring cache entry %s", target, archive)
        try:
            with gzip.open(archive, "rb") as src:
                self.docker.load(src)
        except (OSError, EOFError, zlib.error, DockerCommandError) as e:
            raise CacheRestoreError(
                target, f"Failed to restore cache entry {archive}: {e}"
            ) from e
        return True

    def persist(self, target: str, image: ImageRef, recipe_hash: str) -> CacheEntry:
        archive = self.archive_path(target)
        manifest = self.manifest_path(target)

        try:
            layers = self.docker.history_ids(image.tag)
            refs = [image.tag, *layers]

            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target}.", suffix=".tmp", dir=self.cache_dir
            )
            tmp_path = Path(tmp_name)
            try:
                with os.fdopen(fd, "wb") as raw, gzip.GzipFile(
                    fileobj=raw, mode="wb"
                ) as dest:
                    self.docker.save(refs, dest)
                # The old manifest must not describe the new archive
                manifest.unlink(missing_ok=True)
                os.replace(tmp_path, archive)
            finally:
                tmp_path.unlink(missing_ok=True)

            entry = CacheEntry(
                target=target,
                image=image.tag,
                recipe_hash=recipe_hash,
                layers=layers,
                size_bytes=archive.stat().st_size,
                sha256=compute_file_sha256(archive),
                created_at=datetime.now(timezone.utc),
            )
            manifest.write_text(entry.model_dump_json(indent=2), encoding="utf-8")
        except (OSError, DockerCommandError) as e:
            raise CachePersistError(
                target, f"Failed to write cache entry {archive}: {e}"
            ) from e

        logger.info(
            "[%s] Saved cache entry %s (%d layers, %d bytes)",
            target,
            archive,
            len(layers),
            entry.size_bytes,
        )
        return entry

    def list_entries(self) -> list[CacheEntry]:
        """Return manifests of all archives present, sorted by target."""
        if not self.cache_dir.is_dir():
            return []
        entries: list[CacheEntry] = []
        for archive in sorted(self.cache_dir.glob(f"*{ARCHIVE_SUFFIX}")):
            target = archive.name[: -len(ARCHIVE_SUFFIX)]
            if not is_valid_target_id(target):
                continue
            entry = self.read_entry(target)
            if entry is not None:
                entries.append(entry)
        return entries

    def remove(self, target: str) -> bool:
        """Delete a target's archive and manifest.

        Returns:
            True if an archive was removed.
        """
        archive = self.archive_path(target)
        existed = archive.exists()
        archive.unlink(missing_ok=True)
        self.manifest_path(target).unlink(missing_ok=True)
        return existed


__all__ = [
    "ArchiveCacheStore",
    "CacheStore",
    "NullCacheStore",
]
