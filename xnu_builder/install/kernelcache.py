"""Kernel collection build with kmutil.

X86_64 kernels boot from a boot and a system kernel collection built
against the new kernel. kmutil writes them next to the kernel, suffixed
with the variant (e.g. BootKernelExtensions.kc.development).
"""

from __future__ import annotations

import logging
from pathlib import Path

from xnu_builder.build_config import BuildConfiguration
from xnu_builder.errors import ConfigurationError
from xnu_builder.layout import ArtifactRoots
from xnu_builder.pipeline.artifacts import (
    KernelBuildLocation,
    locate_kernel_build,
    require_kernel_image,
)
from xnu_builder.process import CommandRunner
from xnu_builder.types import Architecture, KernelArtifactSet

logger = logging.getLogger(__name__)

# Extensions that are not part of the open source kernel and must be left
# out of the collections
ELIDED_IDENTIFIERS = (
    "com.apple.driver.AppleIntelTGLGraphicsFramebuffer",
    "com.apple.driver.ExclaveSEPManagerProxy",
    "com.apple.driver.EXDisplayPipe",
    "com.apple.ExclaveKextClient",
    "com.apple.EXBrightKext",
)


def compose_kmutil_command(
    location: KernelBuildLocation, variant_suffix: str
) -> list[str]:
    """Build the kmutil invocation for an X86_64 kernel."""
    cmd = [
        "kmutil",
        "create",
        "-a",
        "x86_64",
        "-Z",
        "-n",
        "boot",
        "sys",
        "-B",
        str(location.boot_collection_path),
        "-S",
        str(location.system_collection_path),
        "-k",
        str(location.kernel_path),
        "--variant-suffix",
        variant_suffix,
    ]
    for identifier in ELIDED_IDENTIFIERS:
        cmd.extend(["--elide-identifier", identifier])
    return cmd


def collection_paths(
    location: KernelBuildLocation, variant_suffix: str
) -> tuple[Path, Path]:
    """Paths of the boot and system collections kmutil produces."""
    return (
        location.boot_collection_path.with_name(
            f"{location.boot_collection_path.name}.{variant_suffix}"
        ),
        location.system_collection_path.with_name(
            f"{location.system_collection_path.name}.{variant_suffix}"
        ),
    )


def require_kernel_cache_support(config: BuildConfiguration) -> None:
    """Fail unless kernel collections can be built for the architecture.

    Raises:
        ConfigurationError: Kernel collections are not supported for ARM64.
    """
    if config.architecture is Architecture.ARM64:
        raise ConfigurationError(
            "kmutil for ARM64 has not been configured yet.",
            code="kernel_cache_unsupported",
        )


def build_kernel_cache(
    roots: ArtifactRoots,
    config: BuildConfiguration,
    runner: CommandRunner,
) -> KernelArtifactSet:
    """Build the kernel collections for a built kernel.

    Args:
        roots: Working directory layout.
        config: Build configuration of the kernel.
        runner: Command runner.

    Returns:
        KernelArtifactSet with the kernel and both collections.

    Raises:
        ConfigurationError: Kernel collections are not supported for ARM64.
        DiscoveryError: The kernel build or image is missing.
        ExternalToolFailure: kmutil failed.
    """
    require_kernel_cache_support(config)

    location = locate_kernel_build(roots, config)
    kernel_path = require_kernel_image(location)

    logger.info("Creating kernel collections with kmutil...")
    logger.debug("Boot collection: %s", location.boot_collection_path)
    logger.debug("System collection: %s", location.system_collection_path)

    runner.run(compose_kmutil_command(location, config.variant_suffix))

    boot_path, system_path = collection_paths(location, config.variant_suffix)
    logger.info("kmutil successfully built the kernel cache")
    return KernelArtifactSet(
        kernel_image_path=kernel_path,
        boot_extensions_path=boot_path,
        system_extensions_path=system_path,
    )


__all__ = [
    "ELIDED_IDENTIFIERS",
    "build_kernel_cache",
    "collection_paths",
    "compose_kmutil_command",
    "require_kernel_cache_support",
]
