"""Install state machine.

Installs a built kernel onto the live boot volume:

    DISCOVER -> MOUNT_READ_WRITE -> [BUILD_KERNEL_CACHE] -> COPY_ARTIFACTS
        -> REGENERATE_BOOT_SNAPSHOT -> VERIFY_BOOT_CONFIGURATION
        -> PROMPT_REBOOT -> REBOOT | UNMOUNT

BUILD_KERNEL_CACHE only runs for X86_64. ARM64 kernel collections cannot be
built yet, so DISCOVER rejects ARM64 before the volume is mounted. Each
state has one transition method returning the next state (None when the
run is over). Any error aborts the run where it happened; a volume that was
already mounted stays mounted so the operator can inspect it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from xnu_builder.build_config import BuildConfiguration
from xnu_builder.errors import DiscoveryError, ExternalToolFailure
from xnu_builder.install.bootargs import (
    VerificationWarning,
    check_boot_args,
    read_boot_args,
)
from xnu_builder.install.disk import (
    BootVolumeHandle,
    DiskQuery,
    PartitionEntry,
    discover_partition,
)
from xnu_builder.install.kernelcache import (
    build_kernel_cache,
    require_kernel_cache_support,
)
from xnu_builder.layout import ArtifactRoots, FileSystemQuery, LocalFileSystem
from xnu_builder.pipeline.artifacts import locate_kernel_build, require_kernel_image
from xnu_builder.process import CommandRunner
from xnu_builder.types import Architecture, InstallState, KernelArtifactSet

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]

REBOOT_PROMPT = "Do you want to reboot now?"

KERNELS_DIR = "System/Library/Kernels"
KERNEL_COLLECTIONS_DIR = "System/Library/KernelCollections"
CORE_SERVICES_DIR = "System/Library/CoreServices"


def _never(_: str) -> bool:
    return False


@dataclass
class InstallReport:
    """Result of an install run.

    Attributes:
        volume: Discovered boot volume.
        partition: Partition that was mounted read-write.
        artifacts: Installed kernel and collections.
        states: States visited, in order.
        warnings: Boot argument findings.
        rebooted: Whether a reboot was requested.
    """

    volume: BootVolumeHandle | None = None
    partition: PartitionEntry | None = None
    artifacts: KernelArtifactSet | None = None
    states: list[InstallState] = field(default_factory=list)
    warnings: list[VerificationWarning] = field(default_factory=list)
    rebooted: bool = False


class InstallStateMachine:
    """Drives one install of a built kernel.

    Args:
        roots: Working directory layout (build output and mount point).
        config: Build configuration of the kernel to install.
        disk: Disk queries for boot volume discovery.
        runner: Command runner.
        fs: Filesystem queries for artifact checks.
        confirm: Asks the operator a yes/no question.
    """

    def __init__(
        self,
        roots: ArtifactRoots,
        config: BuildConfiguration,
        disk: DiskQuery,
        runner: CommandRunner,
        fs: FileSystemQuery | None = None,
        confirm: ConfirmFn = _never,
    ) -> None:
        self.roots = roots
        self.config = config
        self.disk = disk
        self.runner = runner
        self.fs = fs or LocalFileSystem()
        self.confirm = confirm
        self.report = InstallReport()

        self._transitions: dict[InstallState, Callable[[], InstallState | None]] = {
            InstallState.DISCOVER: self.discover,
            InstallState.MOUNT_READ_WRITE: self.mount_read_write,
            InstallState.BUILD_KERNEL_CACHE: self.build_kernel_cache,
            InstallState.COPY_ARTIFACTS: self.copy_artifacts,
            InstallState.REGENERATE_BOOT_SNAPSHOT: self.regenerate_boot_snapshot,
            InstallState.VERIFY_BOOT_CONFIGURATION: self.verify_boot_configuration,
            InstallState.PROMPT_REBOOT: self.prompt_reboot,
            InstallState.REBOOT: self.reboot,
            InstallState.UNMOUNT: self.unmount,
        }

    @property
    def mount_point(self) -> Path:
        return self.roots.mount_point

    def run(self) -> InstallReport:
        """Run every state from DISCOVER until the run is over.

        Returns:
            InstallReport of the run.

        Raises:
            DiscoveryError: Boot volume, partition or artifacts not found.
            ConfigurationError: ARM64 install, kernel collections unsupported.
            ExternalToolFailure: mount, kmutil, cp, bless or umount failed.
        """
        self.report = InstallReport()
        state: InstallState | None = InstallState.DISCOVER

        while state is not None:
            logger.debug("Install state: %s", state.value)
            self.report.states.append(state)
            state = self._transitions[state]()

        return self.report

    # Transitions

    def discover(self) -> InstallState:
        location = locate_kernel_build(self.roots, self.config)
        self.report.artifacts = KernelArtifactSet(
            kernel_image_path=require_kernel_image(location)
        )
        require_kernel_cache_support(self.config)

        volume, partition = discover_partition(self.disk)
        self.report.volume = volume
        self.report.partition = partition
        return InstallState.MOUNT_READ_WRITE

    def mount_read_write(self) -> InstallState:
        partition = self.report.partition
        if partition is None:
            raise DiscoveryError(
                "No boot volume partition to mount", code="partition_not_found"
            )

        self.mount_point.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Mounting /dev/%s read-write at %s", partition.identifier, self.mount_point
        )
        self.runner.run(
            [
                "sudo",
                "mount",
                "-o",
                "nobrowse",
                "-t",
                "apfs",
                f"/dev/{partition.identifier}",
                str(self.mount_point),
            ]
        )

        if self.config.architecture is Architecture.X86_64:
            return InstallState.BUILD_KERNEL_CACHE
        return InstallState.COPY_ARTIFACTS

    def build_kernel_cache(self) -> InstallState:
        self.report.artifacts = build_kernel_cache(self.roots, self.config, self.runner)
        return InstallState.COPY_ARTIFACTS

    def copy_artifacts(self) -> InstallState:
        artifacts = self.report.artifacts
        if artifacts is None or not artifacts.has_collections:
            raise DiscoveryError(
                "No kernel collections to install for "
                f"{self.config.architecture.value}",
                code="collections_missing",
            )

        copies: list[tuple[Path, str]] = []
        for source, dest_dir in (
            (artifacts.kernel_image_path, KERNELS_DIR),
            (artifacts.boot_extensions_path, KERNEL_COLLECTIONS_DIR),
            (artifacts.system_extensions_path, KERNEL_COLLECTIONS_DIR),
        ):
            if source is None or not self.fs.exists(source):
                raise DiscoveryError(
                    f"Artifact to install does not exist: {source}",
                    code="artifact_missing",
                )
            copies.append((source, dest_dir))

        for source, dest_dir in copies:
            dest = self.mount_point / dest_dir / source.name
            logger.info("Copying %s to %s", source.name, dest)
            self.runner.run(["sudo", "cp", str(source), str(dest)])

        return InstallState.REGENERATE_BOOT_SNAPSHOT

    def regenerate_boot_snapshot(self) -> InstallState:
        logger.info("Creating boot snapshot with bless...")
        self.runner.run(
            [
                "sudo",
                "bless",
                "--folder",
                str(self.mount_point / CORE_SERVICES_DIR),
                "--bootefi",
                "--create-snapshot",
            ]
        )
        return InstallState.VERIFY_BOOT_CONFIGURATION

    def verify_boot_configuration(self) -> InstallState:
        warnings = check_boot_args(read_boot_args(self.runner))
        for warning in warnings:
            logger.warning(warning.message)
        if not warnings:
            logger.info("boot-args are configured for the installed kernel")
        self.report.warnings = warnings
        return InstallState.PROMPT_REBOOT

    def prompt_reboot(self) -> InstallState:
        if self.confirm(REBOOT_PROMPT):
            return InstallState.REBOOT
        return InstallState.UNMOUNT

    def reboot(self) -> None:
        logger.info("Rebooting...")
        self.runner.run(["sudo", "reboot"])
        self.report.rebooted = True
        return None

    def unmount(self) -> None:
        try:
            self.runner.run(["sudo", "umount", str(self.mount_point)])
        except ExternalToolFailure as e:
            raise ExternalToolFailure(
                f"Failed to unmount {self.mount_point}. A reboot is highly recommended.",
                command=e.command,
                exit_code=e.exit_code,
                code="unmount_failed",
            ) from e
        logger.info("Unmounted boot volume from %s", self.mount_point)
        return None


__all__ = ["ConfirmFn", "InstallReport", "InstallStateMachine", "REBOOT_PROMPT"]
