"""Pydantic models for per-target metadata.

A target directory may carry a ``target.yaml`` next to its recipe. The file
is optional; a target without one is required and uses no build args.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cross_imagegen.types import Criticality

# Docker repository components must be lowercase
TARGET_ID_PATTERN = re.compile(r"[a-z0-9][a-z0-9_.\-]*")
BUILD_ARG_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def is_valid_target_id(target: str) -> bool:
    """Check whether a string can be used as a target identifier."""
    return bool(TARGET_ID_PATTERN.fullmatch(target))


class TargetMetadata(BaseModel):
    """Schema for a target's optional metadata file.

    Attributes:
        criticality: Whether the target may fail without failing the run.
        description: Free-form human description.
        build_args: Values passed to the recipe as ``--build-arg``.
    """

    model_config = ConfigDict(extra="forbid")

    criticality: Criticality = Field(
        default=Criticality.REQUIRED,
        description="required or best-effort",
    )
    description: str | None = Field(default=None, description="Target description")
    build_args: dict[str, str] = Field(
        default_factory=dict,
        description="Build arguments passed to the recipe",
    )

    @field_validator("build_args")
    @classmethod
    def validate_build_args(cls, v: dict[str, str]) -> dict[str, str]:
        """Validate build argument names."""
        for key in v:
            if not BUILD_ARG_PATTERN.fullmatch(key):
                raise ValueError(f"invalid build arg name '{key}'")
        return v


__all__ = [
    "TARGET_ID_PATTERN",
    "TargetMetadata",
    "is_valid_target_id",
]
