"""Stage runner for executing one pipeline stage.

This module handles:
- Skipping stages whose output already exists in the staging root
- Fetching missing sources at the manifest-resolved tag
- Composing and executing the stage's toolchain invocations
- Capturing toolchain output to per-stage log files

A skipped stage performs no external invocation, which is what makes an
interrupted pipeline safe to re-run.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path

from xnu_builder.build_config import BuildConfiguration
from xnu_builder.config import DEFAULT_OSS_DISTRIBUTIONS_BASE
from xnu_builder.errors import DiscoveryError
from xnu_builder.layout import ArtifactRoots, FileSystemQuery, StagedPath
from xnu_builder.pipeline.sources import apply_patch, clone_source, describe_source
from xnu_builder.pipeline.stages import Stage, StageContext
from xnu_builder.process import CommandRunner
from xnu_builder.releases.catalog import ReleaseInfo
from xnu_builder.releases.manifest import VersionResolver
from xnu_builder.types import StageStatus

logger = logging.getLogger(__name__)


@dataclass
class StageOutcome:
    """Result of running one stage.

    Attributes:
        stage: Stage name.
        status: SKIPPED if the output already existed, COMPLETED otherwise.
        log_path: Toolchain log, when the stage ran.
    """

    stage: str
    status: StageStatus
    log_path: Path | None = None

    @property
    def skipped(self) -> bool:
        return self.status is StageStatus.SKIPPED


class StageRunner:
    """Runs pipeline stages against one working directory.

    Args:
        roots: Working directory layout.
        release: Target release (KDKROOT, Darwin version).
        resolver: Resolves component tags from the release manifest.
        runner: Executes external commands.
        fs: Filesystem queries for completion checks.
        kernel_repository: Repository of the kernel source.
        oss_distributions_base: Base URL of the open source project
            repositories.
        build_jobs: Parallel make jobs for dependency builds.
        kernel_build_jobs: Parallel make jobs for the kernel.
    """

    def __init__(
        self,
        roots: ArtifactRoots,
        release: ReleaseInfo,
        resolver: VersionResolver,
        runner: CommandRunner,
        fs: FileSystemQuery,
        kernel_repository: str,
        oss_distributions_base: str = DEFAULT_OSS_DISTRIBUTIONS_BASE,
        build_jobs: int = 8,
        kernel_build_jobs: int = 12,
    ) -> None:
        self.roots = roots
        self.release = release
        self.resolver = resolver
        self.runner = runner
        self.fs = fs
        self.kernel_repository = kernel_repository
        self.oss_distributions_base = oss_distributions_base.rstrip("/")
        self.build_jobs = build_jobs
        self.kernel_build_jobs = kernel_build_jobs

    def is_complete(self, stage: Stage, config: BuildConfiguration) -> bool:
        return stage.completion.is_satisfied(self.roots, config, self.fs)

    def run(self, stage: Stage, config: BuildConfiguration) -> StageOutcome:
        """Run a stage unless its output already exists.

        Args:
            stage: Stage declaration.
            config: Validated build configuration.

        Returns:
            StageOutcome describing whether the stage ran.

        Raises:
            ResolutionError: Tag resolution failed.
            ExternalToolFailure: git or the stage toolchain failed.
            DiscoveryError: A patch target or rename source is missing.
        """
        if self.is_complete(stage, config):
            logger.info(
                "%s has been previously built (%s). No action required.",
                stage.name,
                stage.completion.describe(self.roots, config),
            )
            return StageOutcome(stage=stage.name, status=StageStatus.SKIPPED)

        logger.info("Building %s...", stage.name)
        log_path = self.roots.stage_log(stage.name)

        self.ensure_source(stage, log_path)
        source_root = self.roots.source_dir(stage.source_subdir)

        for patch in stage.patches:
            apply_patch(source_root, patch)

        source_version = None
        if stage.needs_source_version:
            source_version = describe_source(self.runner, source_root)

        ctx = StageContext(
            config=config,
            roots=self.roots,
            release=self.release,
            source_root=source_root,
            object_root=self.roots.object_root(stage.object_dir),
            symbol_root=self.roots.symbol_root(stage.symbol_dir),
            build_jobs=self.build_jobs,
            kernel_build_jobs=self.kernel_build_jobs,
            source_version=source_version,
        )

        for invocation in stage.compose(ctx):
            logger.info("Executing: %s", shlex.join(invocation.argv))
            self.runner.run(invocation.argv, cwd=invocation.cwd, log_path=log_path)

        self._apply_renames(stage)

        if isinstance(stage.completion, StagedPath) and stage.completion.sentinel:
            sentinel = stage.completion.path(self.roots)
            sentinel.parent.mkdir(parents=True, exist_ok=True)
            sentinel.touch()

        logger.info("%s built successfully", stage.name)
        return StageOutcome(
            stage=stage.name, status=StageStatus.COMPLETED, log_path=log_path
        )

    def ensure_source(self, stage: Stage, log_path: Path | None = None) -> Path:
        """Fetch the stage's source checkout if it is not present.

        Returns:
            The checkout directory.
        """
        checkout = self.roots.source_dir(stage.checkout_dirname)
        if self.fs.exists(checkout):
            logger.debug("Source for %s already present at %s", stage.name, checkout)
            return checkout

        if stage.project is None:
            return clone_source(self.runner, self.kernel_repository, checkout, None, log_path)

        tag = self.resolver.resolve(stage.project)
        return clone_source(
            self.runner, self.repository_for(stage.project), checkout, tag, log_path
        )

    def repository_for(self, project: str) -> str:
        return f"{self.oss_distributions_base}/{project}.git"

    def _apply_renames(self, stage: Stage) -> None:
        for src_rel, dst_rel in stage.renames:
            src = self.roots.staging_root / src_rel
            dst = self.roots.staging_root / dst_rel
            if not src.exists():
                raise DiscoveryError(
                    f"{stage.name} did not produce expected output: {src}",
                    code="stage_output_missing",
                )
            src.replace(dst)
            logger.debug("Moved %s to %s", src, dst)


__all__ = ["StageOutcome", "StageRunner"]
