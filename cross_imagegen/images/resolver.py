"""Image resolution: find a usable image for a target without building.

This module provides ImageResolver.resolve(), which:
1. Looks up the target's build description (unknown targets fail here)
2. Computes the canonical tag and the recipe content hash
3. Accepts an image already in the local store if its recipe label matches
4. Otherwise restores the target's cache entry and checks again

A restore problem of any kind is a cache miss, never a failure, and an
image whose recipe label does not match is never reported as usable.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cross_imagegen.errors import CacheRestoreError
from cross_imagegen.images.models import ResolveResult, recipe_hash_label
from cross_imagegen.targets.recipe_hash import compute_recipe_hash
from cross_imagegen.types import ImageRef

if TYPE_CHECKING:
    from cross_imagegen.cache.archive import CacheStore
    from cross_imagegen.images.docker import DockerClient
    from cross_imagegen.targets.description import BuildDescription
    from cross_imagegen.targets.registry import TargetRegistry

logger = logging.getLogger(__name__)


class ImageResolver:
    """Maps targets to canonical images and checks for a usable copy."""

    def __init__(
        self,
        registry: TargetRegistry,
        docker: DockerClient,
        cache: CacheStore,
        organization: str,
        version: str,
        label_namespace: str,
    ) -> None:
        self.registry = registry
        self.docker = docker
        self.cache = cache
        self.organization = organization
        self.version = version
        self.label_namespace = label_namespace

    def image_ref(self, target: str) -> ImageRef:
        """Return the canonical image reference for a target."""
        return ImageRef(self.organization, target, self.version)

    def _usable(self, image: ImageRef, recipe_hash: str) -> tuple[bool, str]:
        labels = self.docker.image_labels(image.tag)
        if labels is None:
            return False, "absent"
        if labels.get(recipe_hash_label(self.label_namespace)) != recipe_hash:
            return False, "stale"
        return True, "present"

    def resolve(self, target: str) -> ResolveResult:
        """Resolve a target to a usable image or a cache miss.

        Args:
            target: Target identifier.

        Returns:
            ResolveResult; ``hit`` tells whether a build is needed.

        Raises:
            UnknownTargetError: If the target is not declared.
            InvalidTargetMetadataError: If the target's metadata is invalid.
            DockerCommandError: If the docker CLI cannot be run.
        """
        description = self.registry.get_description(target)
        image = self.image_ref(target)
        recipe_hash = compute_recipe_hash(description)

        usable, reason = self._usable(image, recipe_hash)
        if usable:
            logger.info("[%s] Using local image %s", target, image)
            return ResolveResult(description, image, recipe_hash, hit=True, source="local")
        if reason == "stale":
            logger.info("[%s] Local image %s does not match its recipe", target, image)

        try:
            restored = self.cache.restore(target, recipe_hash)
        except CacheRestoreError as e:
            logger.warning("[%s] %s; treating as cache miss", target, e)
            return ResolveResult(
                description, image, recipe_hash, hit=False, reason="restore_failed"
            )

        if restored:
            usable, reason = self._usable(image, recipe_hash)
            if usable:
                logger.info("[%s] Restored image %s from cache", target, image)
                return ResolveResult(
                    description, image, recipe_hash, hit=True, source="cache"
                )
            logger.warning(
                "[%s] Restored cache entry did not yield a usable %s (%s)",
                target,
                image,
                reason,
            )

        logger.info("[%s] Cache miss for %s", target, image)
        return ResolveResult(description, image, recipe_hash, hit=False, reason=reason)


__all__ = ["ImageResolver"]
