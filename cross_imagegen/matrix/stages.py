"""CI stage runner for the build/test procedure of a ready target.

The stage commands are opaque: they receive the target and its image in
the environment and their exit status decides the target's fate.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from cross_imagegen.errors import StageExecutionError
from cross_imagegen.types import ImageRef, Stage

if TYPE_CHECKING:
    from cross_imagegen.config import Settings

logger = logging.getLogger(__name__)

# Stages run in this order; after_success only when the others passed
STAGE_ORDER = (Stage.INSTALL, Stage.SCRIPT, Stage.AFTER_SUCCESS)


@dataclass
class StageResult:
    """Result of one stage command."""

    stage: Stage
    exit_code: int
    log_path: Path
    duration_seconds: float


class StageRunner:
    """Runs the configured CI stage commands for a target."""

    def __init__(
        self,
        commands: Mapping[Stage, str],
        logs_dir: Path,
        cwd: Path | None = None,
        env_override: Mapping[str, str] | None = None,
    ) -> None:
        self.commands = {stage: cmd for stage, cmd in commands.items() if cmd}
        self.logs_dir = logs_dir
        self.cwd = cwd
        self.env_override = dict(env_override or {})

    @classmethod
    def from_settings(cls, settings: Settings) -> StageRunner | None:
        """Create a runner from settings, or None if no stage is configured."""
        commands = {
            Stage.INSTALL: settings.install_command,
            Stage.SCRIPT: settings.script_command,
            Stage.AFTER_SUCCESS: settings.after_success_command,
        }
        if not any(commands.values()):
            return None
        return cls({s: c for s, c in commands.items() if c}, settings.logs_dir)

    def stage_env(self, target: str, image: ImageRef) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self.env_override)
        env.update(
            {
                "TARGET": target,
                "IMAGE": image.tag,
                "IMAGE_NAME": image.name,
                "IMAGE_VERSION": image.version,
            }
        )
        return env

    def run(self, target: str, image: ImageRef) -> list[StageResult]:
        """Run all configured stages for a target.

        Raises:
            StageExecutionError: On the first failing stage.
        """
        results: list[StageResult] = []
        for stage in STAGE_ORDER:
            command = self.commands.get(stage)
            if command:
                results.append(self._run_stage(stage, command, target, image))
        return results

    def _run_stage(
        self,
        stage: Stage,
        command: str,
        target: str,
        image: ImageRef,
    ) -> StageResult:
        stage_dir = self.logs_dir / target
        stage_dir.mkdir(parents=True, exist_ok=True)
        log_path = stage_dir / f"{stage.value}.log"

        logger.info("[%s] Running %s stage: %s", target, stage.value, command)
        started_at = datetime.now(timezone.utc)
        try:
            with log_path.open("w") as log_file:
                log_file.write(f"# Command: {command}\n")
                log_file.write(f"# Image: {image.tag}\n")
                log_file.write(f"# Started: {started_at.isoformat()}\n\n")
                log_file.flush()
                result = subprocess.run(
                    shlex.split(command),
                    cwd=self.cwd,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    env=self.stage_env(target, image),
                    check=False,
                )
        except OSError as e:
            raise StageExecutionError(
                target,
                stage.value,
                f"Failed to run {stage.value} stage: {e}",
                log_path=log_path,
            ) from e

        duration = (datetime.now(timezone.utc) - started_at).total_seconds()
        if result.returncode != 0:
            message = f"{stage.value} stage failed with exit code {result.returncode}"
            logger.error("[%s] %s. See log: %s", target, message, log_path)
            raise StageExecutionError(
                target,
                stage.value,
                message,
                exit_code=result.returncode,
                log_path=log_path,
            )

        return StageResult(
            stage=stage,
            exit_code=result.returncode,
            log_path=log_path,
            duration_seconds=duration,
        )


__all__ = ["STAGE_ORDER", "StageResult", "StageRunner"]
