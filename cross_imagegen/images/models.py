"""Result types for image resolution and building."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from cross_imagegen.targets.description import BuildDescription
from cross_imagegen.types import ImageRef


def recipe_hash_label(namespace: str) -> str:
    """Name of the label carrying an image's recipe hash."""
    return f"{namespace}.recipe-hash"


def target_label(namespace: str) -> str:
    """Name of the label carrying an image's target id."""
    return f"{namespace}.target"


@dataclass
class ResolveResult:
    """Outcome of resolving a target against the local store and cache.

    Attributes:
        description: Build description of the target.
        image: Canonical image reference.
        recipe_hash: Content hash of the build description.
        hit: Whether a usable image is present.
        source: Where the hit came from ("local" or "cache"); None on a miss.
        reason: Why the lookup missed ("absent", "stale", "restore_failed").
    """

    description: BuildDescription
    image: ImageRef
    recipe_hash: str
    hit: bool
    source: str | None = None
    reason: str | None = None

    @property
    def target(self) -> str:
        return self.description.target


@dataclass
class BuildResult:
    """Result of a successful image build.

    Attributes:
        image: Tagged image produced.
        recipe_hash: Recipe hash stamped on the image.
        log_path: Path to the build log.
        started_at: Build start time.
        finished_at: Build finish time.
        command: The command that was executed.
        base_images: Base images the recipe was checked against.
    """

    image: ImageRef
    recipe_hash: str
    log_path: Path
    started_at: datetime
    finished_at: datetime
    command: str
    base_images: list[str]

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


__all__ = ["BuildResult", "ResolveResult", "recipe_hash_label", "target_label"]
