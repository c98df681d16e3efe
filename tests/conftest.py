"""Shared fixtures: on-disk target registries and a wired orchestrator."""

from pathlib import Path

import pytest
from fakes import LABEL_NS, ORG, VERSION, FakeDocker

from cross_imagegen.cache.archive import ArchiveCacheStore
from cross_imagegen.images.base import BaseImageChecker
from cross_imagegen.images.builder import ImageBuilder
from cross_imagegen.images.resolver import ImageResolver
from cross_imagegen.matrix.orchestrator import MatrixOrchestrator
from cross_imagegen.targets.registry import DirectoryTargetRegistry


@pytest.fixture
def docker_dir(tmp_path: Path) -> Path:
    """Empty target registry root."""
    root = tmp_path / "docker"
    root.mkdir()
    return root


@pytest.fixture
def fake_docker() -> FakeDocker:
    return FakeDocker()


@pytest.fixture
def make_orchestrator(tmp_path: Path, docker_dir: Path, fake_docker: FakeDocker):
    """Factory building a fully wired orchestrator over the fake docker store."""

    def _make(**kwargs) -> MatrixOrchestrator:
        registry = DirectoryTargetRegistry(docker_dir)
        cache = kwargs.pop("cache", None) or ArchiveCacheStore(
            tmp_path / "cache", fake_docker
        )
        resolver = ImageResolver(
            registry=registry,
            docker=fake_docker,
            cache=cache,
            organization=ORG,
            version=VERSION,
            label_namespace=LABEL_NS,
        )
        builder = ImageBuilder(
            docker=fake_docker,
            base_checker=BaseImageChecker(fake_docker, offline=True),
            logs_dir=tmp_path / "logs",
            label_namespace=LABEL_NS,
        )
        return MatrixOrchestrator(
            registry=registry,
            resolver=resolver,
            builder=builder,
            cache=cache,
            **kwargs,
        )

    return _make
