"""Tests for images/builder.py module.

Uses the in-memory docker fake for build execution tests.
"""

from pathlib import Path

import pytest
from fakes import LABEL_NS, ORG, VERSION, FakeDocker, write_target

from cross_imagegen.errors import BuildDescriptionUnresolvableError, BuildExecutionError
from cross_imagegen.images.base import BaseImageChecker
from cross_imagegen.images.builder import ImageBuilder, compose_build_args
from cross_imagegen.targets.registry import DirectoryTargetRegistry
from cross_imagegen.types import ImageRef

IMAGE = ImageRef(ORG, "a", VERSION)


@pytest.fixture
def builder(tmp_path: Path, fake_docker: FakeDocker) -> ImageBuilder:
    return ImageBuilder(
        docker=fake_docker,
        base_checker=BaseImageChecker(fake_docker, offline=True),
        logs_dir=tmp_path / "logs",
        label_namespace=LABEL_NS,
    )


class TestComposeBuildArgs:
    """Tests for compose_build_args function."""

    def test_basic(self, docker_dir: Path):
        """Tag, recipe, labels and context are passed to docker build."""
        write_target(docker_dir, "a")
        desc = DirectoryTargetRegistry(docker_dir).get_description("a")

        args = compose_build_args(desc, IMAGE, "sha256:abc", LABEL_NS)

        assert args == [
            "build",
            "-t",
            f"{ORG}/a:{VERSION}",
            "-f",
            str(docker_dir / "a" / "Dockerfile"),
            "--label",
            "io.test.recipe-hash=sha256:abc",
            "--label",
            "io.test.target=a",
            str(docker_dir),
        ]

    def test_build_args_sorted(self, docker_dir: Path):
        """Build args from metadata are passed in sorted order before the context."""
        write_target(docker_dir, "a", metadata="build_args:\n  ZED: '1'\n  ALPHA: x\n")
        desc = DirectoryTargetRegistry(docker_dir).get_description("a")

        args = compose_build_args(desc, IMAGE, "sha256:abc", LABEL_NS)

        assert args[-5:] == [
            "--build-arg",
            "ALPHA=x",
            "--build-arg",
            "ZED=1",
            str(docker_dir),
        ]


class TestImageBuilder:
    """Tests for ImageBuilder.build."""

    def test_successful_build(
        self, tmp_path: Path, docker_dir: Path, fake_docker: FakeDocker, builder
    ):
        """A successful build tags the image and writes a log."""
        write_target(docker_dir, "a")
        desc = DirectoryTargetRegistry(docker_dir).get_description("a")

        result = builder.build(desc, IMAGE, "sha256:abc")

        assert result.image == IMAGE
        assert result.recipe_hash == "sha256:abc"
        assert result.base_images == ["ubuntu:16.04"]
        assert result.log_path == tmp_path / "logs" / "a" / "build.log"
        assert result.duration_seconds >= 0
        assert result.command.startswith("docker build -t testorg/a:v0.1.9")
        assert fake_docker.images[IMAGE.tag]["io.test.recipe-hash"] == "sha256:abc"

        log = result.log_path.read_text()
        assert "# Command: docker build" in log
        assert "# Recipe hash: sha256:abc" in log
        assert "fake build of testorg/a:v0.1.9" in log
        assert "# Exit code: 0" in log

    def test_failed_build(self, docker_dir: Path, fake_docker: FakeDocker, builder):
        """A failing build raises with the exit code and log path."""
        write_target(docker_dir, "a")
        desc = DirectoryTargetRegistry(docker_dir).get_description("a")
        fake_docker.build_exit_codes[IMAGE.tag] = 2

        with pytest.raises(BuildExecutionError) as exc_info:
            builder.build(desc, IMAGE, "sha256:abc")

        err = exc_info.value
        assert err.code == "build_failed"
        assert err.exit_code == 2
        assert err.target == "a"
        assert "exit code 2" in str(err)
        assert "# Exit code: 2" in err.log_path.read_text()

    def test_failed_build_keeps_previous_image(
        self, docker_dir: Path, fake_docker: FakeDocker, builder
    ):
        """A failed rebuild leaves the old image under the tag."""
        write_target(docker_dir, "a")
        desc = DirectoryTargetRegistry(docker_dir).get_description("a")
        fake_docker.images[IMAGE.tag] = {"io.test.recipe-hash": "sha256:old"}
        fake_docker.build_exit_codes[IMAGE.tag] = 1

        with pytest.raises(BuildExecutionError):
            builder.build(desc, IMAGE, "sha256:new")

        assert fake_docker.images[IMAGE.tag] == {"io.test.recipe-hash": "sha256:old"}

    def test_unresolvable_base(self, docker_dir: Path, fake_docker: FakeDocker, builder):
        """Missing base images fail before docker build runs."""
        write_target(docker_dir, "a", recipe="FROM nowhere/base:1\n")
        desc = DirectoryTargetRegistry(docker_dir).get_description("a")

        with pytest.raises(BuildDescriptionUnresolvableError):
            builder.build(desc, IMAGE, "sha256:abc")

        assert fake_docker.builds == []
