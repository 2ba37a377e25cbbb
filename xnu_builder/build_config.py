"""Build configuration resolution.

Turns raw variant/architecture/machine/version values (from flags or the
environment) into a validated, immutable BuildConfiguration that is passed
explicitly to every component.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from xnu_builder.config import Settings
from xnu_builder.errors import ConfigurationError
from xnu_builder.releases.catalog import get_release
from xnu_builder.types import (
    NO_MACHINE,
    VALID_MACHINES,
    Action,
    Architecture,
    KernelVariant,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildConfiguration:
    """Validated kernel build configuration.

    Attributes:
        kernel_variant: DEVELOPMENT or RELEASE.
        architecture: X86_64 or ARM64.
        machine: Machine configuration; set iff architecture is ARM64.
        target_os_version: Target macOS version.
    """

    kernel_variant: KernelVariant
    architecture: Architecture
    machine: str | None
    target_os_version: str

    @property
    def machine_config(self) -> str:
        """Machine value as the toolchain expects it ('NONE' when absent)."""
        return self.machine or NO_MACHINE

    @property
    def target_configs(self) -> str:
        """Value for the TARGET_CONFIGS make variable."""
        return (
            f"{self.kernel_variant.value} {self.architecture.value} "
            f"{self.machine_config}"
        )

    @property
    def variant_suffix(self) -> str:
        """Lower-case variant, used in kernel and collection file names."""
        return self.kernel_variant.value.lower()

    @property
    def kernel_file_name(self) -> str:
        """Expected name of the built kernel binary."""
        if self.machine:
            return f"kernel.{self.variant_suffix}.{self.machine.lower()}"
        return f"kernel.{self.variant_suffix}"

    @property
    def is_default(self) -> bool:
        return (
            self.kernel_variant is KernelVariant.DEVELOPMENT
            and self.architecture is Architecture.X86_64
            and self.machine is None
        )


def format_valid_machines() -> str:
    """Render the valid machine identifiers, one per line."""
    return "\n".join(
        f"{machine} ({description})" for machine, description in VALID_MACHINES.items()
    )


def requires_validation(action: Action) -> bool:
    """Whether an action depends on the architecture configuration.

    fetch and clean are architecture-independent and skip validation.
    """
    return action in (Action.BUILD, Action.INSTALL)


def _normalize(value: str | None) -> str:
    return (value or "").strip().upper()


def resolve_build_configuration(
    kernel_variant: str,
    architecture: str,
    machine: str | None,
    target_os_version: str,
) -> BuildConfiguration:
    """Validate and normalize raw configuration values.

    Args:
        kernel_variant: DEVELOPMENT or RELEASE (case-insensitive).
        architecture: X86_64 or ARM64 (case-insensitive).
        machine: Machine identifier, or None/'NONE' when absent.
        target_os_version: Target macOS version.

    Returns:
        Validated BuildConfiguration.

    Raises:
        ConfigurationError: Invalid combination or value.
        UnsupportedVersionError: Target version is not in the release catalog.
    """
    variant_value = _normalize(kernel_variant)
    try:
        variant = KernelVariant(variant_value)
    except ValueError:
        raise ConfigurationError(
            f"Invalid kernel type specified: {kernel_variant}. "
            "Use DEVELOPMENT or RELEASE.",
            code="invalid_kernel_type",
        ) from None

    arch_value = _normalize(architecture)
    try:
        arch = Architecture(arch_value)
    except ValueError:
        raise ConfigurationError(
            f"Invalid architecture specified: {architecture}. Use X86_64 or ARM64.",
            code="invalid_architecture",
        ) from None

    machine_value = _normalize(machine)
    if machine_value == NO_MACHINE:
        machine_value = ""

    if arch is Architecture.X86_64 and machine_value:
        raise ConfigurationError(
            f"Machine configuration is not applicable for X86_64 (got {machine}).",
            code="machine_not_applicable",
        )

    if arch is Architecture.ARM64:
        if not machine_value:
            raise ConfigurationError(
                "Machine configuration is required for ARM64. "
                "Valid machine configurations are:\n" + format_valid_machines(),
                code="machine_required",
                valid_machines=list(VALID_MACHINES),
            )
        if machine_value not in VALID_MACHINES:
            logger.warning(
                "Machine configuration %s is not a known ARM64 target", machine_value
            )

    version = (target_os_version or "").strip()
    get_release(version)

    return BuildConfiguration(
        kernel_variant=variant,
        architecture=arch,
        machine=machine_value or None,
        target_os_version=version,
    )


def configuration_from_settings(
    settings: Settings,
    kernel_variant: str | None = None,
    architecture: str | None = None,
    machine: str | None = None,
) -> BuildConfiguration:
    """Resolve a configuration from settings with optional flag overrides."""
    return resolve_build_configuration(
        kernel_variant if kernel_variant is not None else settings.kernel_config,
        architecture if architecture is not None else settings.arch_config,
        machine if machine is not None else settings.machine_config,
        settings.macos_version,
    )


__all__ = [
    "BuildConfiguration",
    "configuration_from_settings",
    "format_valid_machines",
    "requires_validation",
    "resolve_build_configuration",
]
