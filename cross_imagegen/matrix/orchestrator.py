"""Matrix orchestration across declared targets.

This module provides the run loop:
- RunMode: one explicitly named target, or every declared target
- MatrixOrchestrator.run(): resolve each target, build on a cache miss,
  persist fresh builds to the cache, optionally run CI stages, and record
  each target's outcome in a RunReport

Single-target runs propagate the first failure. Full-matrix runs record a
failure and move on to the next target, in lexicographic order.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cross_imagegen.errors import (
    CachePersistError,
    CrossImageError,
    StageExecutionError,
    UnknownTargetError,
)
from cross_imagegen.matrix.report import RunReport, TargetReport
from cross_imagegen.types import Criticality, Stage, TargetOutcome, TargetState

if TYPE_CHECKING:
    from cross_imagegen.cache.archive import CacheStore
    from cross_imagegen.images.builder import ImageBuilder
    from cross_imagegen.images.models import ResolveResult
    from cross_imagegen.images.resolver import ImageResolver
    from cross_imagegen.matrix.stages import StageRunner
    from cross_imagegen.targets.registry import TargetRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunMode:
    """Which targets a run processes.

    ``RunMode.single(t)`` processes exactly ``t``; ``RunMode.all()``
    processes every declared target.
    """

    target: str | None = None

    @classmethod
    def single(cls, target: str) -> RunMode:
        return cls(target=target)

    @classmethod
    def all(cls) -> RunMode:
        return cls(target=None)

    @property
    def is_single(self) -> bool:
        return self.target is not None

    @property
    def label(self) -> str:
        return "single" if self.is_single else "all"


class MatrixOrchestrator:
    """Drives resolver, builder, cache and CI stages over a target set."""

    def __init__(
        self,
        registry: TargetRegistry,
        resolver: ImageResolver,
        builder: ImageBuilder,
        cache: CacheStore,
        stages: StageRunner | None = None,
        fail_fast: bool = False,
    ) -> None:
        self.registry = registry
        self.resolver = resolver
        self.builder = builder
        self.cache = cache
        self.stages = stages
        self.fail_fast = fail_fast

    def run(self, mode: RunMode) -> RunReport:
        """Process the targets selected by a run mode.

        Args:
            mode: Single target or full matrix.

        Returns:
            RunReport with one entry per processed target.

        Raises:
            UnknownTargetError: If the single requested target is not declared.
            CrossImageError: In single mode, the target's failure.
        """
        report = RunReport(mode=mode.label, requested_target=mode.target)
        declared = self.registry.list_declared_targets()

        if mode.target is not None:
            if mode.target not in declared:
                raise UnknownTargetError(mode.target, declared)
            self.process(mode.target, report)
            return report

        if not declared:
            logger.warning("No targets declared")
        for target in sorted(declared):
            try:
                self.process(target, report)
            except (CrossImageError, OSError):
                entry = report.get(target)
                if (
                    self.fail_fast
                    and entry is not None
                    and entry.criticality == Criticality.REQUIRED
                ):
                    logger.error("[%s] Stopping matrix run (fail-fast)", target)
                    report.stopped_early = True
                    break

        logger.info(
            "Matrix run finished: %d ready (%d cached, %d built), %d failed",
            report.succeeded,
            report.cache_hits,
            report.built,
            report.failed,
        )
        return report

    def process(self, target: str, report: RunReport) -> TargetReport:
        """Take one target from pending to ready or failed.

        The entry is recorded in the report before any failure propagates.

        Raises:
            CrossImageError: If any stage fails for the target.
            OSError: If logs or cache files cannot be written.
        """
        entry = report.record(
            TargetReport(
                target=target,
                image=self.resolver.image_ref(target).tag,
                transitions=[TargetState.PENDING],
            )
        )
        started = time.monotonic()
        stage = Stage.RESOLVE
        try:
            self._transition(entry, TargetState.RESOLVING)
            resolved = self.resolver.resolve(target)
            entry.criticality = resolved.description.criticality

            if resolved.hit:
                self._transition(entry, TargetState.CACHE_HIT)
                entry.outcome = TargetOutcome.CACHED
                entry.cache_source = resolved.source
            else:
                self._transition(entry, TargetState.CACHE_MISS)
                stage = Stage.BUILD
                self._transition(entry, TargetState.BUILDING)
                result = self.builder.build(
                    resolved.description, resolved.image, resolved.recipe_hash
                )
                entry.outcome = TargetOutcome.BUILT
                entry.log_path = str(result.log_path)
                entry.cache_saved = self._persist(resolved)

            if self.stages is not None:
                self.stages.run(target, resolved.image)

            self._transition(entry, TargetState.READY)
            logger.info("[%s] Ready: %s (%s)", target, entry.image, entry.outcome.value)
        except (CrossImageError, OSError) as e:
            failed_stage = Stage(e.stage) if isinstance(e, StageExecutionError) else stage
            entry.outcome = TargetOutcome.FAILED
            entry.failed_stage = failed_stage
            entry.error_code = getattr(e, "code", "os_error")
            entry.error_message = str(e)
            log_path = getattr(e, "log_path", None)
            if log_path is not None:
                entry.log_path = str(log_path)
            self._transition(entry, TargetState.FAILED)
            logger.error(
                "[%s] Failed in %s stage (%s): %s",
                target,
                failed_stage.value,
                entry.error_code,
                e,
            )
            raise
        finally:
            entry.duration_seconds = round(time.monotonic() - started, 3)
        return entry

    def _persist(self, resolved: ResolveResult) -> bool | None:
        try:
            saved = self.cache.persist(
                resolved.target, resolved.image, resolved.recipe_hash
            )
        except CachePersistError as e:
            logger.warning("[%s] %s", resolved.target, e)
            return False
        if saved is None:
            # Cache disabled
            return None
        return True

    @staticmethod
    def _transition(entry: TargetReport, state: TargetState) -> None:
        logger.debug("[%s] %s -> %s", entry.target, entry.state.value, state.value)
        entry.state = state
        entry.transitions.append(state)


__all__ = ["MatrixOrchestrator", "RunMode"]
