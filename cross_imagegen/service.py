"""High-level wiring of the provisioning pipeline from settings.

This module provides:
- build_components(): docker client, registry, cache, resolver and builder
- create_orchestrator(): a MatrixOrchestrator ready to run
"""

from __future__ import annotations

from dataclasses import dataclass

from cross_imagegen.cache.archive import ArchiveCacheStore, CacheStore, NullCacheStore
from cross_imagegen.config import Settings, get_settings
from cross_imagegen.images.base import BaseImageChecker
from cross_imagegen.images.builder import ImageBuilder
from cross_imagegen.images.docker import DockerClient
from cross_imagegen.images.resolver import ImageResolver
from cross_imagegen.matrix.orchestrator import MatrixOrchestrator
from cross_imagegen.matrix.stages import StageRunner
from cross_imagegen.targets.registry import DirectoryTargetRegistry


@dataclass
class Components:
    """Collaborators of one run, all built from the same settings."""

    settings: Settings
    docker: DockerClient
    registry: DirectoryTargetRegistry
    cache: CacheStore
    resolver: ImageResolver
    builder: ImageBuilder


def build_components(
    settings: Settings | None = None,
    use_cache: bool = True,
) -> Components:
    """Create the pipeline collaborators from settings.

    Args:
        settings: Application settings (uses defaults if not provided).
        use_cache: Whether to restore/persist cache archives.

    Returns:
        Components instance.
    """
    if settings is None:
        settings = get_settings()

    docker = DockerClient(settings.docker_bin)
    registry = DirectoryTargetRegistry(settings.docker_dir)
    cache: CacheStore = (
        ArchiveCacheStore(settings.cache_dir, docker) if use_cache else NullCacheStore()
    )
    resolver = ImageResolver(
        registry=registry,
        docker=docker,
        cache=cache,
        organization=settings.organization,
        version=settings.image_version,
        label_namespace=settings.label_namespace,
    )
    builder = ImageBuilder(
        docker=docker,
        base_checker=BaseImageChecker(
            docker, offline=settings.offline, timeout=settings.registry_timeout
        ),
        logs_dir=settings.logs_dir,
        label_namespace=settings.label_namespace,
    )
    return Components(
        settings=settings,
        docker=docker,
        registry=registry,
        cache=cache,
        resolver=resolver,
        builder=builder,
    )


def create_orchestrator(
    settings: Settings | None = None,
    use_cache: bool = True,
    with_stages: bool = False,
    fail_fast: bool | None = None,
) -> MatrixOrchestrator:
    """Create a MatrixOrchestrator from settings.

    Args:
        settings: Application settings (uses defaults if not provided).
        use_cache: Whether to restore/persist cache archives.
        with_stages: Whether to run the configured CI stage commands.
        fail_fast: Override for settings.fail_fast.

    Returns:
        MatrixOrchestrator instance.
    """
    components = build_components(settings, use_cache=use_cache)
    settings = components.settings
    return MatrixOrchestrator(
        registry=components.registry,
        resolver=components.resolver,
        builder=components.builder,
        cache=components.cache,
        stages=StageRunner.from_settings(settings) if with_stages else None,
        fail_fast=settings.fail_fast if fail_fast is None else fail_fast,
    )


__all__ = ["Components", "build_components", "create_orchestrator"]
