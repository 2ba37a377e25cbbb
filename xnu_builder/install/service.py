"""Install service layer.

Wires the install state machine to the real disk, filesystem and command
runner for the install action.
"""

from __future__ import annotations

import logging

from xnu_builder.build_config import BuildConfiguration
from xnu_builder.config import Settings, get_settings
from xnu_builder.install.disk import DiskQuery, DiskutilQuery
from xnu_builder.install.machine import ConfirmFn, InstallReport, InstallStateMachine
from xnu_builder.layout import ArtifactRoots, FileSystemQuery
from xnu_builder.process import CommandRunner

logger = logging.getLogger(__name__)


def install_kernel(
    config: BuildConfiguration,
    confirm: ConfirmFn,
    settings: Settings | None = None,
    runner: CommandRunner | None = None,
    disk: DiskQuery | None = None,
    fs: FileSystemQuery | None = None,
) -> InstallReport:
    """Install the built kernel for a configuration onto the boot volume.

    Args:
        config: Build configuration of the kernel to install.
        confirm: Asks the operator a yes/no question (reboot prompt).
        settings: Application settings (uses defaults if not provided).
        runner: Command runner (created if not provided).
        disk: Disk queries (diskutil if not provided).
        fs: Filesystem queries (real disk if not provided).

    Returns:
        InstallReport of the run.

    Raises:
        DiscoveryError: Build, boot volume or partition not found.
        ConfigurationError: Kernel collections requested for ARM64.
        ExternalToolFailure: A system command failed.
    """
    if settings is None:
        settings = get_settings()
    if runner is None:
        runner = CommandRunner(timeout=settings.build_timeout)
    if disk is None:
        disk = DiskutilQuery(runner)

    roots = ArtifactRoots.from_work_dir(settings.work_dir)
    logger.info(
        "Installing XNU %s for %s from %s",
        config.kernel_variant.value,
        config.architecture.value,
        roots.build_root,
    )

    machine = InstallStateMachine(
        roots=roots,
        config=config,
        disk=disk,
        runner=runner,
        fs=fs,
        confirm=confirm,
    )
    return machine.run()


__all__ = ["install_kernel"]
