"""Target discovery.

The orchestrator only sees the ``TargetRegistry`` protocol. The default
implementation scans a directory with one subdirectory per target; the
static registry serves an embedded manifest of descriptions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import ValidationError

from cross_imagegen.errors import InvalidTargetMetadataError, UnknownTargetError
from cross_imagegen.targets.description import (
    METADATA_FILENAME,
    RECIPE_FILENAME,
    BuildDescription,
)
from cross_imagegen.targets.schema import TargetMetadata, is_valid_target_id

logger = logging.getLogger(__name__)


class TargetRegistry(Protocol):
    """Source of declared targets and their build descriptions."""

    def list_declared_targets(self) -> set[str]:
        """Return every declared target identifier."""
        ...

    def get_description(self, target: str) -> BuildDescription:
        """Return the build description for a target.

        Raises:
            UnknownTargetError: If the target is not declared.
        """
        ...


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML content as a dictionary (empty for an empty file).

    Raises:
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the YAML content is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping, got {type(data).__name__}")
    return data


def load_target_metadata(target: str, path: Path) -> TargetMetadata:
    """Load and validate a target metadata file.

    Args:
        target: Target identifier (for error reporting).
        path: Path to ``target.yaml``. A missing file yields defaults.

    Returns:
        Validated TargetMetadata.

    Raises:
        InvalidTargetMetadataError: If the file is unreadable or invalid.
    """
    if not path.exists():
        return TargetMetadata()
    try:
        return TargetMetadata.model_validate(load_yaml(path))
    except (yaml.YAMLError, ValueError, OSError) as e:
        # ValidationError is a ValueError subclass
        reason = (
            "; ".join(err["msg"] for err in e.errors())
            if isinstance(e, ValidationError)
            else str(e)
        )
        raise InvalidTargetMetadataError(target, path, reason) from e


class DirectoryTargetRegistry:
    """Registry backed by a directory with one subdirectory per target.

    A subdirectory is a declared target when it contains a recipe file.
    The registry root is the build context shared by all recipes.
    """

    def __init__(
        self,
        root: Path,
        recipe_filename: str = RECIPE_FILENAME,
        metadata_filename: str = METADATA_FILENAME,
    ) -> None:
        self.root = root
        self.recipe_filename = recipe_filename
        self.metadata_filename = metadata_filename

    def list_declared_targets(self) -> set[str]:
        if not self.root.is_dir():
            logger.warning("Target registry directory does not exist: %s", self.root)
            return set()

        targets: set[str] = set()
        for entry in self.root.iterdir():
            if not entry.is_dir() or not (entry / self.recipe_filename).is_file():
                continue
            if not is_valid_target_id(entry.name):
                logger.warning("Ignoring invalid target directory name: %s", entry.name)
                continue
            targets.add(entry.name)
        return targets

    def get_description(self, target: str) -> BuildDescription:
        directory = self.root / target
        recipe_path = directory / self.recipe_filename
        if not is_valid_target_id(target) or not recipe_path.is_file():
            raise UnknownTargetError(target, self.list_declared_targets())

        metadata = load_target_metadata(target, directory / self.metadata_filename)
        return BuildDescription(
            target=target,
            directory=directory,
            recipe_path=recipe_path,
            context_dir=self.root,
            metadata=metadata,
        )


class StaticTargetRegistry:
    """In-memory registry over a fixed set of build descriptions."""

    def __init__(
        self,
        descriptions: Mapping[str, BuildDescription] | Iterable[BuildDescription],
    ) -> None:
        if isinstance(descriptions, Mapping):
            self._descriptions = dict(descriptions)
        else:
            self._descriptions = {d.target: d for d in descriptions}

    def list_declared_targets(self) -> set[str]:
        return set(self._descriptions)

    def get_description(self, target: str) -> BuildDescription:
        try:
            return self._descriptions[target]
        except KeyError:
            raise UnknownTargetError(target, set(self._descriptions)) from None


__all__ = [
    "DirectoryTargetRegistry",
    "StaticTargetRegistry",
    "TargetRegistry",
    "load_target_metadata",
    "load_yaml",
]
