"""Target registry module.

This module handles:
- Discovering declared targets (directory scan or static manifest)
- Loading per-target metadata
- Computing the content hash of a target's build description
"""

from cross_imagegen.targets.description import BuildDescription, parse_base_images
from cross_imagegen.targets.recipe_hash import compute_recipe_hash
from cross_imagegen.targets.registry import (
    DirectoryTargetRegistry,
    StaticTargetRegistry,
    TargetRegistry,
)
from cross_imagegen.targets.schema import TargetMetadata

__all__ = [
    "BuildDescription",
    "DirectoryTargetRegistry",
    "StaticTargetRegistry",
    "TargetMetadata",
    "TargetRegistry",
    "compute_recipe_hash",
    "parse_base_images",
]
