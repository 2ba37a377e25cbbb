"""Kernel build pipeline.

This module handles:
- Stage declarations in fixed build order
- Source checkout and patching
- Idempotent stage execution with per-stage logs
- Build artifact discovery
- The build, fetch and clean service layer
"""

from xnu_builder.pipeline.executor import PipelineExecutor
from xnu_builder.pipeline.runner import StageOutcome, StageRunner
from xnu_builder.pipeline.stages import PIPELINE_STAGES, Stage

__all__ = [
    "PIPELINE_STAGES",
    "PipelineExecutor",
    "Stage",
    "StageOutcome",
    "StageRunner",
]

# Service functions live in xnu_builder.pipeline.service
