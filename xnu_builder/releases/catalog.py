"""Release catalog for supported macOS versions.

Each supported target macOS version maps to:
- the apple-oss-distributions release manifest URL
- the Kernel Debug Kit name and install root
- the Darwin kernel version stamped into the build

macOS 14.5 is the baked-in default.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from xnu_builder.errors import UnsupportedVersionError

DISTRIBUTION_MANIFEST_BASE = (
    "https://raw.githubusercontent.com/apple-oss-distributions/distribution-macOS"
)
DEFAULT_KDK_INSTALL_DIR = Path("/Library/Developer/KDKs")
DEFAULT_MACOS_VERSION = "14.5"


@dataclass(frozen=True)
class ReleaseInfo:
    """Constants tied to one target macOS version.

    Attributes:
        macos_version: Target macOS version (e.g. '14.5').
        release_url: URL of the release manifest JSON.
        kdk_name: Kernel Debug Kit name as listed in the debug kit manifest.
        kdk_root: Install location of the debug kit.
        darwin_kernel_version: Value for RC_DARWIN_KERNEL_VERSION.
    """

    macos_version: str
    release_url: str
    kdk_name: str
    kdk_root: Path
    darwin_kernel_version: str


def release_url_for(version: str, base_url: str = DISTRIBUTION_MANIFEST_BASE) -> str:
    """Build the release manifest URL for a macOS version.

    Args:
        version: macOS version such as '14.5'.
        base_url: Base URL of the distribution-macOS repository.

    Returns:
        URL of the release.json manifest.
    """
    tag = "macos-" + version.replace(".", "")
    return f"{base_url}/{tag}/release.json"


def _release(
    version: str, build: str, darwin_version: str, kdk_dir: Path
) -> ReleaseInfo:
    return ReleaseInfo(
        macos_version=version,
        release_url=release_url_for(version),
        kdk_name=f"Kernel Debug Kit {version} build {build}",
        kdk_root=kdk_dir / f"KDK_{version}_{build}.kdk",
        darwin_kernel_version=darwin_version,
    )


# (macOS version, debug kit build, Darwin kernel version)
_SUPPORTED: list[tuple[str, str, str]] = [
    ("12.5", "21G72", "22.6.0"),
    ("13.0", "22A380", "22.1.0"),
    ("13.1", "22C65", "22.2.0"),
    ("13.2", "22D49", "22.3.0"),
    ("13.3", "22E252", "22.4.0"),
    ("13.4", "22F66", "22.5.0"),
    ("13.5", "22G74", "22.6.0"),
    ("14.0", "23A344", "23.0.0"),
    ("14.1", "23B74", "23.1.0"),
    ("14.2", "23C64", "23.2.0"),
    ("14.3", "23D56", "23.3.0"),
    ("14.4", "23E214", "23.4.0"),
]

DEFAULT_RELEASE = _release(
    DEFAULT_MACOS_VERSION, "23F79", "23.5.0", DEFAULT_KDK_INSTALL_DIR
)

RELEASES: dict[str, ReleaseInfo] = {
    version: _release(version, build, darwin, DEFAULT_KDK_INSTALL_DIR)
    for version, build, darwin in _SUPPORTED
}


def get_release(
    version: str, kdk_install_dir: Path = DEFAULT_KDK_INSTALL_DIR
) -> ReleaseInfo:
    """Look up the catalog entry for a macOS version.

    Args:
        version: Target macOS version.
        kdk_install_dir: Directory debug kits are installed into.

    Returns:
        ReleaseInfo for the version. The default version returns
        DEFAULT_RELEASE itself when the install dir is the default one.

    Raises:
        UnsupportedVersionError: Version is not in the catalog.
    """
    if not version:
        raise UnsupportedVersionError(version, supported_versions())

    if version == DEFAULT_MACOS_VERSION:
        release = DEFAULT_RELEASE
    else:
        try:
            release = RELEASES[version]
        except KeyError:
            raise UnsupportedVersionError(version, supported_versions()) from None

    if kdk_install_dir != DEFAULT_KDK_INSTALL_DIR:
        release = ReleaseInfo(
            macos_version=release.macos_version,
            release_url=release.release_url,
            kdk_name=release.kdk_name,
            kdk_root=kdk_install_dir / release.kdk_root.name,
            darwin_kernel_version=release.darwin_kernel_version,
        )
    return release


def supported_versions() -> list[str]:
    """Return all supported macOS versions in ascending order."""
    return sorted([*RELEASES, DEFAULT_MACOS_VERSION], key=_version_key)


def _version_key(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in version.split("."))


__all__ = [
    "DEFAULT_MACOS_VERSION",
    "DEFAULT_RELEASE",
    "DISTRIBUTION_MANIFEST_BASE",
    "RELEASES",
    "ReleaseInfo",
    "get_release",
    "release_url_for",
    "supported_versions",
]
