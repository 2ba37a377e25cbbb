"""Build artifact discovery.

Locates the output of a previous kernel build:
- the kernel object root (build/xnu-<version>...)
- the variant folder inside it (e.g. DEVELOPMENT_X86_64)
- the kernel binary and its kernel collections

Install cannot proceed without a prior successful build, so every lookup
raises DiscoveryError when nothing matches.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from xnu_builder.build_config import BuildConfiguration
from xnu_builder.errors import DiscoveryError
from xnu_builder.layout import ArtifactRoots

logger = logging.getLogger(__name__)

BUILD_VERSION_PATTERN = re.compile(r"^xnu-\d+")

BOOT_COLLECTION_NAME = "BootKernelExtensions.kc"
SYSTEM_COLLECTION_NAME = "SystemKernelExtensions.kc"


@dataclass(frozen=True)
class KernelBuildLocation:
    """Where a kernel build for one configuration lives.

    Attributes:
        version_dir: Kernel object root, e.g. build/xnu-10063.121.3~5.
        config_dir: Variant folder inside it.
        kernel_path: Expected kernel binary path (may not exist).
    """

    version_dir: Path
    config_dir: Path
    kernel_path: Path

    @property
    def built_version(self) -> str:
        return self.version_dir.name

    @property
    def boot_collection_path(self) -> Path:
        return self.config_dir / BOOT_COLLECTION_NAME

    @property
    def system_collection_path(self) -> Path:
        return self.config_dir / SYSTEM_COLLECTION_NAME


def find_build_version_dir(build_root: Path) -> Path:
    """Find the most recently produced kernel object root.

    Args:
        build_root: Builder build directory.

    Returns:
        Directory whose name matches xnu-<digits>.

    Raises:
        DiscoveryError: If no such directory exists.
    """
    candidates: list[Path] = []
    if build_root.is_dir():
        candidates = [
            d
            for d in build_root.iterdir()
            if d.is_dir() and BUILD_VERSION_PATTERN.match(d.name)
        ]

    if not candidates:
        raise DiscoveryError(
            f"No compiled XNU build detected in {build_root}",
            code="build_not_found",
        )

    version_dir = max(candidates, key=lambda d: (d.stat().st_mtime, d.name))
    logger.info("Detected XNU build version: %s", version_dir.name)
    return version_dir


def find_kernel_config_dir(
    version_dir: Path, variant: str, kernel_file_name: str | None = None
) -> Path:
    """Find the variant folder of a kernel build.

    Several configurations of one variant share the kernel object root
    (DEVELOPMENT_X86_64 next to DEVELOPMENT_ARM64_VMAPPLE), so when
    ``kernel_file_name`` is given the folder holding that binary wins.

    Args:
        version_dir: Kernel object root.
        variant: Kernel variant name (DEVELOPMENT or RELEASE).
        kernel_file_name: Kernel binary the folder should contain.

    Returns:
        The folder holding the kernel binary, else the first directory
        whose name starts with the variant.

    Raises:
        DiscoveryError: If no folder matches.
    """
    matches = sorted(
        d for d in version_dir.glob(f"{variant}*") if d.is_dir()
    )
    if not matches:
        raise DiscoveryError(
            f"No {variant} folder detected in {version_dir}",
            code="kernel_config_not_found",
        )

    config_dir = matches[0]
    if kernel_file_name:
        config_dir = next(
            (d for d in matches if (d / kernel_file_name).is_file()), config_dir
        )

    logger.info("Detected kernel folder: %s", config_dir)
    return config_dir


def locate_kernel_build(
    roots: ArtifactRoots, config: BuildConfiguration
) -> KernelBuildLocation:
    """Locate the kernel build for a configuration.

    The kernel binary itself is not checked; see require_kernel_image().

    Raises:
        DiscoveryError: If the build or variant folder is missing.
    """
    version_dir = find_build_version_dir(roots.build_root)
    config_dir = find_kernel_config_dir(
        version_dir, config.kernel_variant.value, config.kernel_file_name
    )
    return KernelBuildLocation(
        version_dir=version_dir,
        config_dir=config_dir,
        kernel_path=config_dir / config.kernel_file_name,
    )


def require_kernel_image(location: KernelBuildLocation) -> Path:
    """Return the kernel binary path, failing if it was not built.

    Raises:
        DiscoveryError: If the kernel file does not exist.
    """
    if not location.kernel_path.is_file():
        raise DiscoveryError(
            f"Kernel file does not exist: {location.kernel_path}",
            code="kernel_not_found",
        )
    logger.info("Kernel file found: %s", location.kernel_path)
    return location.kernel_path


__all__ = [
    "BOOT_COLLECTION_NAME",
    "BUILD_VERSION_PATTERN",
    "KernelBuildLocation",
    "SYSTEM_COLLECTION_NAME",
    "find_build_version_dir",
    "find_kernel_config_dir",
    "locate_kernel_build",
    "require_kernel_image",
]
