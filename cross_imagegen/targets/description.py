"""Build description for one target.

A build description is read-only: the recipe (a Dockerfile), the target
directory holding it, and the shared build context.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from cross_imagegen.targets.schema import TargetMetadata
from cross_imagegen.types import Criticality

RECIPE_FILENAME = "Dockerfile"
METADATA_FILENAME = "target.yaml"

_FROM_RE = re.compile(
    r"^\s*FROM\s+(?:--platform=\S+\s+)?(?P<image>\S+)(?:\s+AS\s+(?P<alias>\S+))?",
    re.IGNORECASE,
)


def parse_base_images(recipe: str) -> list[str]:
    """Extract external base image references from a Dockerfile.

    Skips ``scratch``, references to earlier multi-stage aliases and
    references that depend on unexpanded build arguments.

    Args:
        recipe: Dockerfile content.

    Returns:
        Base image references in order of first appearance.
    """
    aliases: set[str] = set()
    bases: list[str] = []
    for line in recipe.splitlines():
        match = _FROM_RE.match(line)
        if match is None:
            continue
        image = match.group("image")
        alias = match.group("alias")
        if (
            image.lower() != "scratch"
            and image.lower() not in aliases
            and "$" not in image
            and image not in bases
        ):
            bases.append(image)
        if alias:
            aliases.add(alias.lower())
    return bases


@dataclass(frozen=True)
class BuildDescription:
    """Declarative recipe for one target image.

    Attributes:
        target: Target identifier.
        directory: Target subdirectory holding the recipe.
        recipe_path: Path to the Dockerfile.
        context_dir: Docker build context (the registry root).
        metadata: Parsed target metadata.
    """

    target: str
    directory: Path
    recipe_path: Path
    context_dir: Path
    metadata: TargetMetadata = field(default_factory=TargetMetadata)

    @property
    def criticality(self) -> Criticality:
        return self.metadata.criticality

    def read_recipe(self) -> str:
        """Return the recipe text."""
        return self.recipe_path.read_bytes().decode("utf-8", errors="replace")

    def base_images(self) -> list[str]:
        """Return the external base images the recipe builds on."""
        return parse_base_images(self.read_recipe())


__all__ = [
    "METADATA_FILENAME",
    "RECIPE_FILENAME",
    "BuildDescription",
    "parse_base_images",
]
