"""Run report for one orchestration pass.

The report lives only for the duration of a run; it is rendered as text or
JSON by the CLI and is never persisted.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, computed_field

from cross_imagegen.types import Criticality, Stage, TargetOutcome, TargetState


class TargetReport(BaseModel):
    """Outcome of one target.

    Attributes:
        target: Target identifier.
        image: Canonical image tag.
        state: Current state; ``ready`` or ``failed`` once processed.
        outcome: cached, built or failed.
        criticality: Whether the target's failure fails the run.
        transitions: States taken, in order.
        cache_source: Where a cached image came from ("local" or "cache").
        cache_saved: Whether a fresh build was written to the cache.
        failed_stage: Stage in which the target failed.
        error_code: Stable error code of the failure.
        error_message: Human-readable failure message.
        log_path: Log of the build or of the failing stage.
        duration_seconds: Wall-clock time spent on the target.
    """

    target: str
    image: str | None = None
    state: TargetState = TargetState.PENDING
    outcome: TargetOutcome | None = None
    criticality: Criticality = Criticality.REQUIRED
    transitions: list[TargetState] = Field(default_factory=list)
    cache_source: str | None = None
    cache_saved: bool | None = None
    failed_stage: Stage | None = None
    error_code: str | None = None
    error_message: str | None = None
    log_path: str | None = None
    duration_seconds: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == TargetState.READY

    @property
    def failed(self) -> bool:
        return self.state == TargetState.FAILED


class RunReport(BaseModel):
    """Per-target outcomes of one orchestration pass."""

    mode: str
    requested_target: str | None = None
    results: list[TargetReport] = Field(default_factory=list)
    stopped_early: bool = False

    def record(self, entry: TargetReport) -> TargetReport:
        """Record a target's entry, replacing any earlier entry for it."""
        for i, existing in enumerate(self.results):
            if existing.target == entry.target:
                self.results[i] = entry
                return entry
        self.results.append(entry)
        return entry

    def get(self, target: str) -> TargetReport | None:
        for entry in self.results:
            if entry.target == target:
                return entry
        return None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return len(self.results)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.failed)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def cache_hits(self) -> int:
        return sum(1 for r in self.results if r.outcome == TargetOutcome.CACHED)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def built(self) -> int:
        return sum(1 for r in self.results if r.outcome == TargetOutcome.BUILT)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        """False if any required target failed or the run stopped early."""
        if self.stopped_early:
            return False
        return not any(
            r.failed and r.criticality == Criticality.REQUIRED for r in self.results
        )


__all__ = ["RunReport", "TargetReport"]
