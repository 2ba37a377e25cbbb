"""Pipeline executor.

Drives the fixed stage order to build the kernel image. The first failing
stage aborts the run; a partial kernel is never reported as usable.
"""

from __future__ import annotations

import logging

from xnu_builder.build_config import BuildConfiguration
from xnu_builder.errors import BuilderError, PipelineError
from xnu_builder.layout import ArtifactRoots
from xnu_builder.pipeline.artifacts import locate_kernel_build, require_kernel_image
from xnu_builder.pipeline.runner import StageOutcome, StageRunner
from xnu_builder.pipeline.stages import PIPELINE_STAGES, Stage
from xnu_builder.types import KernelArtifactSet

logger = logging.getLogger(__name__)


class PipelineExecutor:
    """Runs every stage of the pipeline in order.

    Args:
        roots: Working directory layout; created before the first stage.
        stage_runner: Runs individual stages.
        stages: Stage order (defaults to PIPELINE_STAGES).
    """

    def __init__(
        self,
        roots: ArtifactRoots,
        stage_runner: StageRunner,
        stages: tuple[Stage, ...] = PIPELINE_STAGES,
    ) -> None:
        self.roots = roots
        self.stage_runner = stage_runner
        self.stages = stages
        self.outcomes: list[StageOutcome] = []

    def run(self, config: BuildConfiguration) -> KernelArtifactSet:
        """Build the kernel image.

        Args:
            config: Validated build configuration.

        Returns:
            KernelArtifactSet pointing at the built kernel (no collections).

        Raises:
            PipelineError: A stage failed; later stages were not run.
            DiscoveryError: The pipeline finished but no kernel image exists.
        """
        self.roots.ensure()
        self.outcomes = []

        for index, stage in enumerate(self.stages, start=1):
            logger.info("[%d/%d] Stage %s", index, len(self.stages), stage.name)
            try:
                outcome = self.stage_runner.run(stage, config)
            except BuilderError as e:
                logger.error("Stage %s failed: %s", stage.name, e.message)
                raise PipelineError(stage.name, e) from e
            self.outcomes.append(outcome)

        location = locate_kernel_build(self.roots, config)
        kernel_path = require_kernel_image(location)
        logger.info("XNU build done: %s", kernel_path)
        return KernelArtifactSet(kernel_image_path=kernel_path)


__all__ = ["PipelineExecutor"]
