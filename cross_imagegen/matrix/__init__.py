"""Matrix orchestration module.

This module handles:
- Selecting targets (single or full matrix)
- Per-target resolve / build / cache / CI stage flow
- Aggregating outcomes into a run report
"""

from cross_imagegen.matrix.orchestrator import MatrixOrchestrator, RunMode
from cross_imagegen.matrix.report import RunReport, TargetReport
from cross_imagegen.matrix.stages import StageRunner

__all__ = ["MatrixOrchestrator", "RunMode", "RunReport", "StageRunner", "TargetReport"]
