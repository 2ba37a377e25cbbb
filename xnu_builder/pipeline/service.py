"""Build service layer.

This module provides the high-level operations behind the CLI actions:
- fetch_kernel_source: Clone the kernel source into the working directory
- build_kernel: Host tools, debug kit, kernel source, then the pipeline
- plan_clean / clean: Remove build output and dependency checkouts
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from xnu_builder.build_config import BuildConfiguration
from xnu_builder.config import Settings, get_settings
from xnu_builder.layout import (
    ArtifactRoots,
    FileSystemQuery,
    LocalFileSystem,
    clean_targets,
    clean_workspace,
)
from xnu_builder.pipeline.executor import PipelineExecutor
from xnu_builder.pipeline.runner import StageOutcome, StageRunner
from xnu_builder.pipeline.sources import clone_source
from xnu_builder.pipeline.stages import XNU_SOURCE_DIRNAME
from xnu_builder.pipeline.toolchain import WhichFn, ensure_host_tools
from xnu_builder.process import CommandRunner
from xnu_builder.releases.catalog import get_release
from xnu_builder.releases.kdk import ensure_debug_kit
from xnu_builder.releases.manifest import VersionResolver
from xnu_builder.types import KernelArtifactSet

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Result of a kernel build.

    Attributes:
        config: Configuration that was built.
        artifacts: Built kernel image (collections are built at install time).
        outcomes: Per-stage outcomes in pipeline order.
    """

    config: BuildConfiguration
    artifacts: KernelArtifactSet
    outcomes: list[StageOutcome] = field(default_factory=list)

    @property
    def skipped_stages(self) -> list[str]:
        return [o.stage for o in self.outcomes if o.skipped]


def _http_client(settings: Settings) -> httpx.Client:
    timeout = httpx.Timeout(settings.manifest_timeout, connect=settings.connect_timeout)
    return httpx.Client(follow_redirects=True, timeout=timeout)


def fetch_kernel_source(
    settings: Settings,
    roots: ArtifactRoots | None = None,
    runner: CommandRunner | None = None,
) -> Path:
    """Clone the kernel source unless it is already present.

    Args:
        settings: Application settings.
        roots: Working directory layout (from settings if not provided).
        runner: Command runner (created if not provided).

    Returns:
        The kernel source directory.

    Raises:
        ExternalToolFailure: If git fails.
    """
    if roots is None:
        roots = ArtifactRoots.from_work_dir(settings.work_dir)
    if runner is None:
        runner = CommandRunner(timeout=settings.build_timeout)

    source_dir = roots.source_dir(XNU_SOURCE_DIRNAME)
    if source_dir.exists():
        logger.info("XNU source already present at %s", source_dir)
        return source_dir

    return clone_source(runner, settings.xnu_repository, source_dir)


def build_kernel(
    config: BuildConfiguration,
    settings: Settings | None = None,
    runner: CommandRunner | None = None,
    client: httpx.Client | None = None,
    fs: FileSystemQuery | None = None,
    which: WhichFn = shutil.which,
) -> BuildResult:
    """Build the kernel for a configuration.

    This is the main entry point of the build action. It:
    1. Checks the host build tools
    2. Installs the debug kit for the target version if missing
    3. Fetches the kernel source if missing
    4. Runs every pipeline stage, skipping those already done

    Args:
        config: Validated build configuration.
        settings: Application settings (uses defaults if not provided).
        runner: Command runner (created if not provided).
        client: HTTPX client (creates one if not provided).
        fs: Filesystem queries (real disk if not provided).
        which: Executable lookup for the host tool check.

    Returns:
        BuildResult with the kernel image and stage outcomes.

    Raises:
        ExternalToolFailure: Host tools missing or a setup command failed.
        ResolutionError: Debug kit manifest lookup or download failed.
        PipelineError: A pipeline stage failed.
        DiscoveryError: The kernel image was not produced.
    """
    if settings is None:
        settings = get_settings()
    if runner is None:
        runner = CommandRunner(timeout=settings.build_timeout)
    if fs is None:
        fs = LocalFileSystem()

    roots = ArtifactRoots.from_work_dir(settings.work_dir)
    release = get_release(config.target_os_version, settings.kdk_install_dir)

    logger.info(
        "Building XNU %s for %s (macOS %s)",
        config.kernel_variant.value,
        config.architecture.value,
        config.target_os_version,
    )

    ensure_host_tools(runner, which=which)

    manage_client = client is None
    http_client: httpx.Client = _http_client(settings) if client is None else client

    try:
        ensure_debug_kit(
            http_client,
            release,
            runner,
            manifest_url=settings.kdk_manifest_url,
            manifest_timeout=settings.manifest_timeout,
            download_timeout=settings.download_timeout,
        )
        fetch_kernel_source(settings, roots, runner)

        stage_runner = StageRunner(
            roots=roots,
            release=release,
            resolver=VersionResolver(
                http_client, release, timeout=settings.manifest_timeout
            ),
            runner=runner,
            fs=fs,
            kernel_repository=settings.xnu_repository,
            oss_distributions_base=settings.oss_distributions_base,
            build_jobs=settings.build_jobs,
            kernel_build_jobs=settings.kernel_build_jobs,
        )
        executor = PipelineExecutor(roots, stage_runner)
        artifacts = executor.run(config)

    finally:
        if manage_client:
            http_client.close()

    return BuildResult(config=config, artifacts=artifacts, outcomes=executor.outcomes)


def plan_clean(settings: Settings) -> list[Path]:
    """List the existing paths a clean would delete."""
    roots = ArtifactRoots.from_work_dir(settings.work_dir)
    return [path for path in clean_targets(roots) if path.exists()]


def clean(settings: Settings) -> list[Path]:
    """Delete build output, the staging root and dependency checkouts.

    The kernel source checkout is kept.

    Returns:
        Paths that were removed.
    """
    roots = ArtifactRoots.from_work_dir(settings.work_dir)
    removed = clean_workspace(clean_targets(roots))
    logger.info("Cleaned %d path(s) under %s", len(removed), roots.work_dir)
    return removed


__all__ = [
    "BuildResult",
    "build_kernel",
    "clean",
    "fetch_kernel_source",
    "plan_clean",
]
