"""Thin wrapper around the docker CLI.

This module handles:
- Inspecting images and their labels in the local image store
- Listing an image's layer history
- Streaming `docker save` / `docker load` to and from file objects
- Running long commands (builds) with output captured to a log file

The local image store is an external dependency; everything here is a
synchronous subprocess call with no timeout.
"""

from __future__ import annotations

import json
import logging
import shlex
import shutil
import subprocess
import tempfile
from collections.abc import Sequence
from typing import IO

from cross_imagegen.errors import DockerCommandError

logger = logging.getLogger(__name__)

# Placeholder printed by `docker history` for layers without a local id
MISSING_LAYER = "<missing>"


class DockerClient:
    """Synchronous docker CLI driver."""

    def __init__(self, docker_bin: str = "docker") -> None:
        self.docker_bin = docker_bin

    def command(self, *args: str) -> list[str]:
        """Return a full docker command line."""
        return [self.docker_bin, *args]

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        cmd = self.command(*args)
        logger.debug("Running: %s", shlex.join(cmd))
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise DockerCommandError(
                f"Failed to run {self.docker_bin}: {e}",
                code="docker_unavailable",
            ) from e

    def image_labels(self, tag: str) -> dict[str, str] | None:
        """Return the labels of an image, or None if the tag is absent.

        Args:
            tag: Image tag to inspect.

        Returns:
            Label mapping (possibly empty), or None if no such image.
        """
        result = self._run("image", "inspect", "--format", "{{json .Config.Labels}}", tag)
        if result.returncode != 0:
            logger.debug("Image %s not present: %s", tag, result.stderr.strip())
            return None
        try:
            labels = json.loads(result.stdout.strip() or "null")
        except json.JSONDecodeError:
            logger.warning("Unparseable labels for image %s", tag)
            return {}
        return labels or {}

    def image_exists(self, tag: str) -> bool:
        """Check whether an image is present in the local store."""
        return self.image_labels(tag) is not None

    def history_ids(self, tag: str) -> list[str]:
        """Return the local layer ids of an image, newest first.

        Layers docker reports as ``<missing>`` (pulled base layers without
        a local image id) are excluded.

        Raises:
            DockerCommandError: If the history cannot be read.
        """
        result = self._run("history", "-q", tag)
        if result.returncode != 0:
            raise DockerCommandError(
                f"docker history failed for {tag}: {result.stderr.strip()}",
                exit_code=result.returncode,
            )
        ids: list[str] = []
        for line in result.stdout.splitlines():
            layer = line.strip()
            if layer and layer != MISSING_LAYER and layer not in ids:
                ids.append(layer)
        return ids

    def run_logged(
        self,
        args: Sequence[str],
        log_file: IO[str],
        cwd: str | None = None,
    ) -> int:
        """Run a docker command with stdout/stderr written to a log file.

        Returns:
            Process exit code.

        Raises:
            DockerCommandError: If the docker CLI cannot be started.
        """
        cmd = self.command(*args)
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                check=False,
            )
        except OSError as e:
            raise DockerCommandError(
                f"Failed to run {self.docker_bin}: {e}",
                code="docker_unavailable",
            ) from e
        return result.returncode

    def save(self, refs: Sequence[str], dest: IO[bytes]) -> None:
        """Stream `docker save` of the given refs into a binary file object.

        Raises:
            DockerCommandError: If docker save fails.
        """
        cmd = self.command("save", *refs)
        logger.debug("Running: %s", shlex.join(cmd))
        with tempfile.TemporaryFile() as err:
            try:
                proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=err)
            except OSError as e:
                raise DockerCommandError(
                    f"Failed to run {self.docker_bin}: {e}",
                    code="docker_unavailable",
                ) from e
            with proc.stdout:
                shutil.copyfileobj(proc.stdout, dest)
            returncode = proc.wait()
            if returncode != 0:
                err.seek(0)
                raise DockerCommandError(
                    f"docker save failed: {err.read().decode(errors='replace').strip()}",
                    exit_code=returncode,
                )

    def load(self, src: IO[bytes]) -> None:
        """Stream a binary file object into `docker load`.

        Raises:
            DockerCommandError: If docker load fails.
        """
        cmd = self.command("load")
        logger.debug("Running: %s", shlex.join(cmd))
        with tempfile.TemporaryFile() as out:
            try:
                proc = subprocess.Popen(
                    cmd, stdin=subprocess.PIPE, stdout=out, stderr=subprocess.STDOUT
                )
            except OSError as e:
                raise DockerCommandError(
                    f"Failed to run {self.docker_bin}: {e}",
                    code="docker_unavailable",
                ) from e
            try:
                with proc.stdin:
                    shutil.copyfileobj(src, proc.stdin)
            except BrokenPipeError:
                # docker load exited early; its exit code carries the error
                pass
            except BaseException:
                proc.kill()
                proc.wait()
                raise
            returncode = proc.wait()
            if returncode != 0:
                out.seek(0)
                raise DockerCommandError(
                    f"docker load failed: {out.read().decode(errors='replace').strip()}",
                    exit_code=returncode,
                )


__all__ = ["MISSING_LAYER", "DockerClient"]
