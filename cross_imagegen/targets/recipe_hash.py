"""Content hash of a build description.

This module handles:
- Canonical snapshot creation from a build description
- Deterministic hash computation over the snapshot

The hash is stamped on built images and recorded next to cache archives,
so a cached image is only reused when its recipe is byte-for-byte the one
on disk. A recipe edit without a version bump therefore forces a rebuild.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from cross_imagegen.targets.description import BuildDescription

# Bump when the snapshot format changes
RECIPE_HASH_SCHEMA_VERSION = "1"

HASH_CHUNK_SIZE = 64 * 1024


@dataclass
class RecipeSnapshot:
    """Canonical representation of everything that shapes a target image.

    Attributes:
        schema_version: Version of the snapshot format.
        target: Target identifier.
        recipe: SHA-256 of the recipe file.
        target_files: Relative path -> SHA-256 for files in the target directory.
        shared_files: Name -> SHA-256 for top-level files of the build context.
        build_args: Build arguments from the target metadata.
    """

    schema_version: str = RECIPE_HASH_SCHEMA_VERSION
    target: str = ""
    recipe: str = ""
    target_files: dict[str, str] = field(default_factory=dict)
    shared_files: dict[str, str] = field(default_factory=dict)
    build_args: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_file_sha256(file_path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Compute SHA-256 hex digest of a file."""
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def create_recipe_snapshot(description: BuildDescription) -> RecipeSnapshot:
    """Create the canonical snapshot for a build description.

    Shared files are the regular files directly under the build context;
    other targets' directories are excluded so editing one target does not
    invalidate the rest of the matrix.

    Args:
        description: Build description to snapshot.

    Returns:
        RecipeSnapshot instance.
    """
    target_files = {
        path.relative_to(description.directory).as_posix(): compute_file_sha256(path)
        for path in sorted(description.directory.rglob("*"))
        if path.is_file()
    }

    shared_files: dict[str, str] = {}
    if description.context_dir.is_dir():
        for path in sorted(description.context_dir.iterdir()):
            if path.is_file():
                shared_files[path.name] = compute_file_sha256(path)

    return RecipeSnapshot(
        target=description.target,
        recipe=compute_file_sha256(description.recipe_path),
        target_files=target_files,
        shared_files=shared_files,
        build_args=dict(sorted(description.metadata.build_args.items())),
    )


def compute_recipe_hash(description: BuildDescription) -> str:
    """Compute the content hash of a build description.

    Args:
        description: Build description to hash.

    Returns:
        Hash string (sha256:...).
    """
    snapshot = create_recipe_snapshot(description)
    canonical_json = json.dumps(
        snapshot.to_dict(),
        sort_keys=True,
        separators=(",", ":"),
    )
    return f"sha256:{hashlib.sha256(canonical_json.encode('utf-8')).hexdigest()}"


__all__ = [
    "RECIPE_HASH_SCHEMA_VERSION",
    "RecipeSnapshot",
    "compute_file_sha256",
    "compute_recipe_hash",
    "create_recipe_snapshot",
]
