"""Shared type definitions for cross_imagegen.

This module contains enums and small dataclasses shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum


class TargetState(str, Enum):
    """Processing state of one target during an orchestration pass."""

    PENDING = "pending"
    RESOLVING = "resolving"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    BUILDING = "building"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is possible."""
        return self in (TargetState.READY, TargetState.FAILED)


class TargetOutcome(str, Enum):
    """Per-target result recorded in the run report."""

    CACHED = "cached"
    BUILT = "built"
    FAILED = "failed"


class Criticality(str, Enum):
    """Whether a target's failure fails the whole run."""

    REQUIRED = "required"
    BEST_EFFORT = "best-effort"


class Stage(str, Enum):
    """Pipeline stage a target can fail in."""

    RESOLVE = "resolve"
    BUILD = "build"
    INSTALL = "install"
    SCRIPT = "script"
    AFTER_SUCCESS = "after_success"


@dataclass(frozen=True)
class ImageRef:
    """Canonical reference to a target image.

    Attributes:
        organization: Namespace prefix shared by all images.
        target: Target identifier.
        version: Release version shared by all targets.
    """

    organization: str
    target: str
    version: str

    @property
    def name(self) -> str:
        """Image repository name, ``<organization>/<target>``."""
        return f"{self.organization}/{self.target}"

    @property
    def tag(self) -> str:
        """Full image tag, ``<organization>/<target>:<version>``."""
        return f"{self.name}:{self.version}"

    def __str__(self) -> str:
        return self.tag


__all__ = [
    "Criticality",
    "ImageRef",
    "Stage",
    "TargetOutcome",
    "TargetState",
]
