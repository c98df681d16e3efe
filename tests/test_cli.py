"""Tests for the CLI.

These tests run without docker or network access: settings point at
temporary directories and the orchestrator is patched where a run would
invoke docker.
"""

import gzip
import json
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from fakes import write_target
from typer.testing import CliRunner

from cross_imagegen import __version__
from cross_imagegen.cache.models import CacheEntry
from cross_imagegen.cli import app
from cross_imagegen.errors import DockerCommandError, UnknownTargetError
from cross_imagegen.matrix.report import RunReport, TargetReport
from cross_imagegen.types import Criticality, Stage, TargetOutcome, TargetState

runner = CliRunner()


@pytest.fixture
def env(tmp_path: Path, docker_dir: Path) -> dict[str, str]:
    """Environment pointing every directory setting into tmp_path."""
    return {
        "XIMG_DOCKER_DIR": str(docker_dir),
        "XIMG_CACHE_DIR": str(tmp_path / "cache"),
        "XIMG_LOGS_DIR": str(tmp_path / "logs"),
        "XIMG_ORGANIZATION": "japaric",
        "XIMG_IMAGE_VERSION": "v0.1.9",
        "XIMG_OFFLINE": "true",
    }


def _report(*entries: TargetReport, mode: str = "all", **kwargs) -> RunReport:
    report = RunReport(mode=mode, **kwargs)
    for entry in entries:
        report.record(entry)
    return report


def _ready(target: str, outcome: TargetOutcome = TargetOutcome.BUILT) -> TargetReport:
    return TargetReport(
        target=target,
        image=f"japaric/{target}:v0.1.9",
        state=TargetState.READY,
        outcome=outcome,
    )


def _failed(target: str, **kwargs) -> TargetReport:
    return TargetReport(
        target=target,
        image=f"japaric/{target}:v0.1.9",
        state=TargetState.FAILED,
        outcome=TargetOutcome.FAILED,
        failed_stage=Stage.BUILD,
        error_code="build_failed",
        error_message="Build failed with exit code 1",
        **kwargs,
    )


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Cross Image Generator" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_short_version_flag(self) -> None:
        """CLI -V should print version and exit 0."""
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_no_args_shows_help(self) -> None:
        """CLI with no args should show help."""
        result = runner.invoke(app, [])
        assert "Usage:" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_sections(self, env) -> None:
        """CLI config should show every settings section."""
        result = runner.invoke(app, ["config"], env=env)
        assert result.exit_code == 0
        assert "Images:" in result.stdout
        assert "Paths:" in result.stdout
        assert "Operational:" in result.stdout
        assert "CI stages:" in result.stdout
        assert "japaric" in result.stdout

    def test_config_json(self, env) -> None:
        """CLI config --json should output JSON."""
        result = runner.invoke(app, ["config", "--json"], env=env)
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["organization"] == "japaric"
        assert data["image_version"] == "v0.1.9"
        assert data["offline"] is True


class TestCLIBuild:
    """Test build and ci commands with a patched orchestrator."""

    def test_build_all_success(self, env) -> None:
        """A successful run prints the summary and exits 0."""
        orchestrator = MagicMock()
        orchestrator.run.return_value = _report(
            _ready("a", TargetOutcome.CACHED), _ready("b")
        )

        with patch(
            "cross_imagegen.service.create_orchestrator", return_value=orchestrator
        ) as mock_create:
            result = runner.invoke(app, ["build"], env=env)

        assert result.exit_code == 0
        assert "Matrix Results:" in result.stdout
        assert "Total targets: 2" in result.stdout
        assert "Cache hits: 1" in result.stdout
        assert "(cache hit)" in result.stdout
        mode = orchestrator.run.call_args[0][0]
        assert mode.target is None
        assert mock_create.call_args.kwargs["with_stages"] is False
        assert mock_create.call_args.kwargs["use_cache"] is True

    def test_build_single_target(self, env) -> None:
        """A target argument selects single mode."""
        orchestrator = MagicMock()
        orchestrator.run.return_value = _report(_ready("a"), mode="single")

        with patch(
            "cross_imagegen.service.create_orchestrator", return_value=orchestrator
        ):
            result = runner.invoke(app, ["build", "a"], env=env)

        assert result.exit_code == 0
        assert orchestrator.run.call_args[0][0].target == "a"

    def test_build_flags(self, env) -> None:
        """--fail-fast and --no-cache reach the orchestrator factory."""
        orchestrator = MagicMock()
        orchestrator.run.return_value = _report()

        with patch(
            "cross_imagegen.service.create_orchestrator", return_value=orchestrator
        ) as mock_create:
            runner.invoke(app, ["build", "--fail-fast", "--no-cache"], env=env)

        assert mock_create.call_args.kwargs["fail_fast"] is True
        assert mock_create.call_args.kwargs["use_cache"] is False

    def test_build_failure_exits_nonzero(self, env) -> None:
        """A failed required target exits 1 and shows the failing stage."""
        orchestrator = MagicMock()
        orchestrator.run.return_value = _report(_ready("a"), _failed("b"))

        with patch(
            "cross_imagegen.service.create_orchestrator", return_value=orchestrator
        ):
            result = runner.invoke(app, ["build"], env=env)

        assert result.exit_code == 1
        assert "Failed: 1" in result.stdout
        assert "(failed in build)" in result.stdout

    def test_best_effort_failure_exits_zero(self, env) -> None:
        """Best-effort failures are shown but do not fail the command."""
        orchestrator = MagicMock()
        orchestrator.run.return_value = _report(
            _ready("a"), _failed("b", criticality=Criticality.BEST_EFFORT)
        )

        with patch(
            "cross_imagegen.service.create_orchestrator", return_value=orchestrator
        ):
            result = runner.invoke(app, ["build"], env=env)

        assert result.exit_code == 0
        assert "(allowed to fail)" in result.stdout

    def test_unknown_target(self, env) -> None:
        """Unknown targets exit 1 and list the declared ones."""
        orchestrator = MagicMock()
        orchestrator.run.side_effect = UnknownTargetError("mips", {"a", "b"})

        with patch(
            "cross_imagegen.service.create_orchestrator", return_value=orchestrator
        ):
            result = runner.invoke(app, ["build", "mips"], env=env)

        assert result.exit_code == 1
        assert "Unknown target: mips" in result.stdout
        assert "Declared targets: a, b" in result.stdout

    def test_unknown_target_json(self, env) -> None:
        """--json reports unknown targets with a stable code."""
        orchestrator = MagicMock()
        orchestrator.run.side_effect = UnknownTargetError("mips", {"a"})

        with patch(
            "cross_imagegen.service.create_orchestrator", return_value=orchestrator
        ):
            result = runner.invoke(app, ["build", "mips", "--json"], env=env)

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["code"] == "unknown_target"
        assert data["declared"] == ["a"]

    def test_single_failure(self, env) -> None:
        """A single-mode failure is printed with its target."""
        orchestrator = MagicMock()
        orchestrator.run.side_effect = DockerCommandError(
            "Failed to run docker", code="docker_unavailable"
        )

        with patch(
            "cross_imagegen.service.create_orchestrator", return_value=orchestrator
        ):
            result = runner.invoke(app, ["build", "a", "--json"], env=env)

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["code"] == "docker_unavailable"
        assert data["target"] == "a"

    def test_build_json_report(self, env) -> None:
        """--json prints the run report with aggregates."""
        orchestrator = MagicMock()
        orchestrator.run.return_value = _report(_ready("a"), _failed("b"))

        with patch(
            "cross_imagegen.service.create_orchestrator", return_value=orchestrator
        ):
            result = runner.invoke(app, ["build", "--json"], env=env)

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["total"] == 2
        assert data["failed"] == 1
        assert data["success"] is False
        assert [r["target"] for r in data["results"]] == ["a", "b"]

    def test_ci_runs_stages(self, env) -> None:
        """The ci command enables CI stages."""
        orchestrator = MagicMock()
        orchestrator.run.return_value = _report()

        with patch(
            "cross_imagegen.service.create_orchestrator", return_value=orchestrator
        ) as mock_create:
            result = runner.invoke(app, ["ci"], env=env)

        assert result.exit_code == 0
        assert mock_create.call_args.kwargs["with_stages"] is True


class TestCLITargets:
    """Test targets subcommands against a temporary registry."""

    def test_list_empty(self, env) -> None:
        result = runner.invoke(app, ["targets", "list"], env=env)
        assert result.exit_code == 0
        assert "No targets declared" in result.stdout

    def test_list_json(self, env, docker_dir: Path) -> None:
        """targets list --json returns one row per target."""
        write_target(docker_dir, "b", metadata="criticality: best-effort\n")
        write_target(docker_dir, "a")

        result = runner.invoke(app, ["targets", "list", "--json"], env=env)

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [row["target"] for row in data] == ["a", "b"]
        assert data[0]["image"] == "japaric/a:v0.1.9"
        assert data[1]["criticality"] == "best-effort"

    def test_list_invalid_metadata(self, env, docker_dir: Path) -> None:
        """Invalid metadata is reported and exits 1."""
        write_target(docker_dir, "a", metadata="criticality: maybe\n")

        result = runner.invoke(app, ["targets", "list"], env=env)

        assert result.exit_code == 1
        assert "Error:" in result.stdout

    def test_show_json(self, env, docker_dir: Path) -> None:
        """targets show --json includes image, hash and base images."""
        write_target(docker_dir, "a")

        result = runner.invoke(app, ["targets", "show", "a", "--json"], env=env)

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["image"] == "japaric/a:v0.1.9"
        assert data["recipe_hash"].startswith("sha256:")
        assert data["base_images"] == ["ubuntu:16.04"]
        assert data["cache_fresh"] is False

    def test_show_unknown(self, env) -> None:
        result = runner.invoke(app, ["targets", "show", "nope"], env=env)
        assert result.exit_code == 1
        assert "Unknown target" in result.stdout


class TestCLICache:
    """Test cache subcommands."""

    def _write_entry(self, cache_dir: Path, target: str) -> None:
        cache_dir.mkdir(parents=True, exist_ok=True)
        with gzip.open(cache_dir / f"{target}.tar.gz", "wb") as f:
            f.write(b"tar")
        entry = CacheEntry(
            target=target,
            image=f"japaric/{target}:v0.1.9",
            recipe_hash="sha256:abc",
            layers=["sha256:top"],
            created_at=datetime.now(timezone.utc),
        )
        (cache_dir / f"{target}.json").write_text(entry.model_dump_json())

    def test_list_empty(self, env) -> None:
        result = runner.invoke(app, ["cache", "list"], env=env)
        assert result.exit_code == 0
        assert "No cache entries" in result.stdout

    def test_list_json(self, env, tmp_path: Path) -> None:
        self._write_entry(tmp_path / "cache", "b")
        self._write_entry(tmp_path / "cache", "a")

        result = runner.invoke(app, ["cache", "list", "--json"], env=env)

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [e["target"] for e in data] == ["a", "b"]
        assert data[0]["recipe_hash"] == "sha256:abc"

    def test_remove(self, env, tmp_path: Path) -> None:
        self._write_entry(tmp_path / "cache", "a")

        result = runner.invoke(app, ["cache", "remove", "a"], env=env)

        assert result.exit_code == 0
        assert "Removed" in result.stdout
        assert not (tmp_path / "cache" / "a.tar.gz").exists()

    def test_remove_missing(self, env) -> None:
        result = runner.invoke(app, ["cache", "remove", "a"], env=env)
        assert result.exit_code == 0
        assert "No cache entry" in result.stdout

    def test_restore_without_entry(self, env, docker_dir: Path) -> None:
        """Restoring a target without an archive is not an error."""
        write_target(docker_dir, "a")

        result = runner.invoke(app, ["cache", "restore", "a"], env=env)

        assert result.exit_code == 0
        assert "No usable cache entry" in result.stdout

    def test_restore_failure_is_best_effort(
        self, env, docker_dir: Path, tmp_path: Path
    ) -> None:
        """A failing docker load is reported without failing the command."""
        write_target(docker_dir, "a")
        self._write_entry(tmp_path / "cache", "a")
        # Without a manifest the archive is loaded whatever its recipe
        (tmp_path / "cache" / "a.json").unlink()

        with patch(
            "cross_imagegen.images.docker.DockerClient.load",
            side_effect=DockerCommandError("docker load failed: bad tar", 1),
        ):
            result = runner.invoke(app, ["cache", "restore", "a"], env=env)

        assert result.exit_code == 0
        assert "Cache restore failed" in result.stdout

    def test_restore_unknown_target(self, env) -> None:
        result = runner.invoke(app, ["cache", "restore", "nope"], env=env)
        assert result.exit_code == 1

    def test_save_missing_image(self, env) -> None:
        """Saving requires the image to be present locally."""
        with patch(
            "cross_imagegen.images.docker.DockerClient.image_labels",
            return_value=None,
        ):
            result = runner.invoke(app, ["cache", "save", "a"], env=env)

        assert result.exit_code == 1
        assert "Image not present" in result.stdout

    def test_save_unlabeled_image(self, env) -> None:
        """Images without a recipe hash label cannot be cached."""
        with patch(
            "cross_imagegen.images.docker.DockerClient.image_labels",
            return_value={},
        ):
            result = runner.invoke(app, ["cache", "save", "a"], env=env)

        assert result.exit_code == 1
        assert "no recipe hash label" in result.stdout

    def test_remove_rejects_path_outside_cache(self, env, tmp_path: Path) -> None:
        """Target ids that escape the cache directory are refused."""
        victim = tmp_path / "victim.tar.gz"
        victim.write_bytes(b"keep")

        result = runner.invoke(app, ["cache", "remove", "../victim"], env=env)

        assert result.exit_code == 1
        assert "Unknown target" in result.stdout
        assert victim.read_bytes() == b"keep"

    def test_save_rejects_invalid_target(self, env) -> None:
        with patch(
            "cross_imagegen.images.docker.DockerClient.image_labels"
        ) as mock_labels:
            result = runner.invoke(app, ["cache", "save", "../x"], env=env)

        assert result.exit_code == 1
        assert "Unknown target" in result.stdout
        mock_labels.assert_not_called()
