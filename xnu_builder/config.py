"""Configuration settings for xnu_builder.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

The four builder variables keep their historical environment names
(KERNEL_CONFIG, ARCH_CONFIG, MACHINE_CONFIG, MACOS_VERSION); everything
else uses the XNU_BUILDER_ prefix.
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_XNU_REPOSITORY = "https://github.com/Carnations-Botanica/xnu.git"
DEFAULT_OSS_DISTRIBUTIONS_BASE = "https://github.com/apple-oss-distributions"
DEFAULT_KDK_MANIFEST_URL = (
    "https://raw.githubusercontent.com/dortania/KdkSupportPkg/gh-pages/manifest.json"
)


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the XNU_BUILDER_
    prefix, except for the builder variables which accept their bare names.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="XNU_BUILDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Builder variables
    kernel_config: str = Field(
        default="DEVELOPMENT",
        validation_alias=AliasChoices("KERNEL_CONFIG", "kernel_config"),
        description="Kernel variant to build (DEVELOPMENT or RELEASE)",
    )
    arch_config: str = Field(
        default="X86_64",
        validation_alias=AliasChoices("ARCH_CONFIG", "arch_config"),
        description="Target architecture (X86_64 or ARM64)",
    )
    machine_config: str = Field(
        default="NONE",
        validation_alias=AliasChoices("MACHINE_CONFIG", "machine_config"),
        description="Machine configuration, ARM64 only",
    )
    macos_version: str = Field(
        default="14.5",
        validation_alias=AliasChoices("MACOS_VERSION", "macos_version"),
        description="Target macOS version used to pick manifests and debug kit",
    )

    # Paths
    work_dir: Path = Field(
        default_factory=Path.cwd,
        description="Working directory holding sources, build and fakeroot trees",
    )
    kdk_install_dir: Path = Field(
        default=Path("/Library/Developer/KDKs"),
        description="Directory Kernel Debug Kits are installed into",
    )

    # Remote sources
    xnu_repository: str = Field(
        default=DEFAULT_XNU_REPOSITORY,
        description="Git repository for the XNU kernel source",
    )
    oss_distributions_base: str = Field(
        default=DEFAULT_OSS_DISTRIBUTIONS_BASE,
        description="Base URL of the Apple open source project repositories",
    )
    kdk_manifest_url: str = Field(
        default=DEFAULT_KDK_MANIFEST_URL,
        description="Manifest listing Kernel Debug Kit download URLs",
    )

    # Operational
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    build_jobs: int = Field(
        default=8,
        ge=1,
        description="Parallel make jobs for dependency builds",
    )
    kernel_build_jobs: int = Field(
        default=12,
        ge=1,
        description="Parallel make jobs for the kernel build",
    )

    # Timeouts (in seconds)
    manifest_timeout: int = Field(
        default=30,
        ge=1,
        description="Timeout for release and debug kit manifest requests",
    )
    download_timeout: int = Field(
        default=900,
        ge=60,
        description="Timeout for the debug kit download",
    )
    connect_timeout: int = Field(
        default=60,
        ge=1,
        description="Connect timeout for HTTP requests",
    )
    build_timeout: int | None = Field(
        default=None,
        ge=60,
        description="Timeout for a single toolchain invocation (unbounded if unset)",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
