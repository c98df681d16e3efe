"""Error taxonomy for cross_imagegen.

Every error carries a stable ``code`` for structured reporting (JSON run
reports, exit messages). Per-target errors also carry the target id so a
failure stays attributable when many targets share one log.
"""

from __future__ import annotations

from pathlib import Path

# Error code constants
UNKNOWN_TARGET = "unknown_target"
INVALID_TARGET_METADATA = "invalid_target_metadata"
BUILD_DESCRIPTION_UNRESOLVABLE = "build_description_unresolvable"
BUILD_FAILED = "build_failed"
CACHE_RESTORE_FAILED = "cache_restore_failed"
CACHE_PERSIST_FAILED = "cache_persist_failed"
STAGE_FAILED = "stage_failed"
DOCKER_ERROR = "docker_error"


class CrossImageError(Exception):
    """Base error for cross_imagegen operations."""

    def __init__(
        self,
        message: str,
        code: str = "cross_imagegen_error",
        target: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.target = target


class UnknownTargetError(CrossImageError):
    """Raised when a target has no declared build description."""

    def __init__(self, target: str, declared: set[str] | None = None) -> None:
        super().__init__(
            f"Unknown target: {target}", code=UNKNOWN_TARGET, target=target
        )
        self.declared = sorted(declared) if declared else []


class InvalidTargetMetadataError(CrossImageError):
    """Raised when a target's metadata file cannot be parsed or validated."""

    def __init__(self, target: str, path: Path, reason: str) -> None:
        super().__init__(
            f"Invalid metadata for target {target} ({path}): {reason}",
            code=INVALID_TARGET_METADATA,
            target=target,
        )
        self.path = path


class BuildDescriptionUnresolvableError(CrossImageError):
    """Raised when a recipe references a base image that cannot be found."""

    def __init__(self, target: str, base_image: str, reason: str) -> None:
        super().__init__(
            f"Base image {base_image} for target {target} is unresolvable: {reason}",
            code=BUILD_DESCRIPTION_UNRESOLVABLE,
            target=target,
        )
        self.base_image = base_image
        self.reason = reason


class BuildExecutionError(CrossImageError):
    """Raised when the image build process fails."""

    def __init__(
        self,
        target: str,
        message: str,
        exit_code: int | None = None,
        log_path: Path | None = None,
    ) -> None:
        super().__init__(message, code=BUILD_FAILED, target=target)
        self.exit_code = exit_code
        self.log_path = log_path


class CacheRestoreError(CrossImageError):
    """Raised when a cache entry exists but cannot be loaded.

    The resolver treats this exactly like a missing entry; it must never
    abort a run.
    """

    def __init__(self, target: str, message: str) -> None:
        super().__init__(message, code=CACHE_RESTORE_FAILED, target=target)


class CachePersistError(CrossImageError):
    """Raised when a built image cannot be serialized to the cache."""

    def __init__(self, target: str, message: str) -> None:
        super().__init__(message, code=CACHE_PERSIST_FAILED, target=target)


class StageExecutionError(CrossImageError):
    """Raised when a CI stage command fails for a target."""

    def __init__(
        self,
        target: str,
        stage: str,
        message: str,
        exit_code: int | None = None,
        log_path: Path | None = None,
    ) -> None:
        super().__init__(message, code=STAGE_FAILED, target=target)
        self.stage = stage
        self.exit_code = exit_code
        self.log_path = log_path


class DockerCommandError(CrossImageError):
    """Raised when the docker CLI cannot be run or reports an error."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = DOCKER_ERROR,
    ) -> None:
        super().__init__(message, code=code)
        self.exit_code = exit_code


__all__ = [
    "BUILD_DESCRIPTION_UNRESOLVABLE",
    "BUILD_FAILED",
    "CACHE_PERSIST_FAILED",
    "CACHE_RESTORE_FAILED",
    "DOCKER_ERROR",
    "INVALID_TARGET_METADATA",
    "STAGE_FAILED",
    "UNKNOWN_TARGET",
    "BuildDescriptionUnresolvableError",
    "BuildExecutionError",
    "CachePersistError",
    "CacheRestoreError",
    "CrossImageError",
    "DockerCommandError",
    "InvalidTargetMetadataError",
    "StageExecutionError",
    "UnknownTargetError",
]
