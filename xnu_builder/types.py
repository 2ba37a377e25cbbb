"""Shared type definitions for xnu_builder.

This module contains enums and small dataclasses shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class Action(str, Enum):
    """Top-level action requested on the command line."""

    FETCH = "fetch"
    CLEAN = "clean"
    BUILD = "build"
    INSTALL = "install"


class KernelVariant(str, Enum):
    """Kernel build variant."""

    DEVELOPMENT = "DEVELOPMENT"
    RELEASE = "RELEASE"


class Architecture(str, Enum):
    """Kernel target architecture."""

    X86_64 = "X86_64"
    ARM64 = "ARM64"


class StageStatus(str, Enum):
    """Outcome of a single pipeline stage."""

    SKIPPED = "skipped"
    COMPLETED = "completed"


class InstallState(str, Enum):
    """States of the install state machine."""

    DISCOVER = "discover"
    MOUNT_READ_WRITE = "mount_read_write"
    BUILD_KERNEL_CACHE = "build_kernel_cache"
    COPY_ARTIFACTS = "copy_artifacts"
    REGENERATE_BOOT_SNAPSHOT = "regenerate_boot_snapshot"
    VERIFY_BOOT_CONFIGURATION = "verify_boot_configuration"
    PROMPT_REBOOT = "prompt_reboot"
    REBOOT = "reboot"
    UNMOUNT = "unmount"


# Machine configurations known to build for ARM64, with a human description
VALID_MACHINES: dict[str, str] = {
    "BCM2837": "Generic ARM Platform",
    "T8101": "Apple A14 Bionic",
    "T8103": "Apple M1",
    "T8112": "Apple M2",
    "T6000": "Apple M1 Pro",
    "T6020": "Apple M2 Pro",
    "VMAPPLE": "Apple Virtual Machine",
}

# Sentinel used by the toolchain when no machine configuration applies
NO_MACHINE = "NONE"


@dataclass(frozen=True)
class KernelArtifactSet:
    """Kernel image plus the kernel collections built from it.

    Attributes:
        kernel_image_path: Built kernel binary.
        boot_extensions_path: Boot kernel collection, once built.
        system_extensions_path: System kernel collection, once built.
    """

    kernel_image_path: Path
    boot_extensions_path: Path | None = None
    system_extensions_path: Path | None = None

    @property
    def has_collections(self) -> bool:
        return (
            self.boot_extensions_path is not None
            and self.system_extensions_path is not None
        )


__all__ = [
    "Action",
    "Architecture",
    "InstallState",
    "KernelArtifactSet",
    "KernelVariant",
    "NO_MACHINE",
    "StageStatus",
    "VALID_MACHINES",
]
