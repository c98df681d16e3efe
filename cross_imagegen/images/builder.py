"""Image builder for executing `docker build` for one target.

This module handles:
- Checking that the recipe's base images are resolvable
- Composing `docker build` commands from build descriptions
- Executing builds and capturing output to a log file

Docker only moves a tag once a build has completed, so a failed build
leaves any previous image under the same tag untouched.
"""

from __future__ import annotations

import logging
import shlex
from datetime import datetime, timezone
from pathlib import Path

from cross_imagegen.errors import BuildExecutionError
from cross_imagegen.images.base import BaseImageChecker
from cross_imagegen.images.docker import DockerClient
from cross_imagegen.images.models import BuildResult, recipe_hash_label, target_label
from cross_imagegen.targets.description import BuildDescription
from cross_imagegen.types import ImageRef

logger = logging.getLogger(__name__)


def compose_build_args(
    description: BuildDescription,
    image: ImageRef,
    recipe_hash: str,
    label_namespace: str,
) -> list[str]:
    """Compose the `docker build` arguments for a target.

    Args:
        description: Build description of the target.
        image: Tag to produce.
        recipe_hash: Recipe hash to stamp as a label.
        label_namespace: Label name prefix.

    Returns:
        Arguments following the docker executable.
    """
    args = [
        "build",
        "-t",
        image.tag,
        "-f",
        str(description.recipe_path),
        "--label",
        f"{recipe_hash_label(label_namespace)}={recipe_hash}",
        "--label",
        f"{target_label(label_namespace)}={description.target}",
    ]
    for key, value in sorted(description.metadata.build_args.items()):
        args.extend(["--build-arg", f"{key}={value}"])
    args.append(str(description.context_dir))
    return args


class ImageBuilder:
    """Builds and tags the image of one target."""

    def __init__(
        self,
        docker: DockerClient,
        base_checker: BaseImageChecker,
        logs_dir: Path,
        label_namespace: str,
    ) -> None:
        self.docker = docker
        self.base_checker = base_checker
        self.logs_dir = logs_dir
        self.label_namespace = label_namespace

    def build(
        self,
        description: BuildDescription,
        image: ImageRef,
        recipe_hash: str,
    ) -> BuildResult:
        """Build a target image, replacing any prior image under its tag.

        Args:
            description: Build description of the target.
            image: Tag to produce.
            recipe_hash: Content hash of the build description.

        Returns:
            BuildResult for the new image.

        Raises:
            BuildDescriptionUnresolvableError: If a base image cannot be found.
            BuildExecutionError: If the build fails.
            DockerCommandError: If the docker CLI cannot be run.
        """
        target = description.target
        bases = self.base_checker.ensure_resolvable(description)

        build_dir = self.logs_dir / target
        build_dir.mkdir(parents=True, exist_ok=True)
        log_path = build_dir / "build.log"

        args = compose_build_args(description, image, recipe_hash, self.label_namespace)
        cmd_str = shlex.join(self.docker.command(*args))
        logger.info("[%s] Building %s", target, image)
        logger.debug("[%s] Executing: %s", target, cmd_str)

        started_at = datetime.now(timezone.utc)
        with log_path.open("w") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write(f"# Recipe hash: {recipe_hash}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            exit_code = self.docker.run_logged(args, log_file)

        finished_at = datetime.now(timezone.utc)
        with log_path.open("a") as log_file:
            log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
            log_file.write(f"# Exit code: {exit_code}\n")
            duration = (finished_at - started_at).total_seconds()
            log_file.write(f"# Duration: {duration:.1f}s\n")

        if exit_code != 0:
            message = f"Build of {image} failed with exit code {exit_code}"
            logger.error("[%s] %s. See log: %s", target, message, log_path)
            raise BuildExecutionError(
                target, message, exit_code=exit_code, log_path=log_path
            )

        logger.info("[%s] Built %s in %.1fs", target, image, duration)
        return BuildResult(
            image=image,
            recipe_hash=recipe_hash,
            log_path=log_path,
            started_at=started_at,
            finished_at=finished_at,
            command=cmd_str,
            base_images=bases,
        )


__all__ = ["ImageBuilder", "compose_build_args"]
