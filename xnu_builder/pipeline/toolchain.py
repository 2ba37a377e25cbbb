"""Host toolchain checks.

Homebrew is the package-manager boundary: it must already be installed,
and it is only asked to install the build tools the kernel needs. Xcode
cannot be installed unattended, so its absence is reported but does not
stop the build.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from pathlib import Path

from xnu_builder.errors import ExternalToolFailure
from xnu_builder.process import CommandRunner

logger = logging.getLogger(__name__)

# Build tools installed through Homebrew when missing
HOMEBREW_PACKAGES = ("cmake", "ninja")

APPLICATIONS_DIR = Path("/Applications")
XCODE_DOWNLOAD_HINT = (
    "Download Xcode from https://developer.apple.com/download/all/ "
    "and install it into /Applications."
)

WhichFn = Callable[[str], str | None]


def xcode_installed(applications_dir: Path = APPLICATIONS_DIR) -> bool:
    """Whether any Xcode*.app bundle exists in the applications directory."""
    return any(applications_dir.glob("Xcode*.app"))


def ensure_host_tools(
    runner: CommandRunner,
    which: WhichFn = shutil.which,
    applications_dir: Path = APPLICATIONS_DIR,
) -> list[str]:
    """Make sure the host build tools are present.

    Args:
        runner: Command runner used for `brew install`.
        which: Executable lookup.
        applications_dir: Where Xcode is expected.

    Returns:
        Packages that were installed.

    Raises:
        ExternalToolFailure: Homebrew is missing or an install failed.
    """
    if which("brew") is None:
        raise ExternalToolFailure(
            "Homebrew is not installed. Install it from https://brew.sh first.",
            command="brew",
            code="homebrew_missing",
        )

    installed: list[str] = []
    for package in HOMEBREW_PACKAGES:
        if which(package) is not None:
            logger.debug("%s is already installed", package)
            continue
        logger.info("Installing %s with Homebrew", package)
        runner.run(["brew", "install", package])
        installed.append(package)

    if not xcode_installed(applications_dir):
        logger.error("Xcode is not installed. %s", XCODE_DOWNLOAD_HINT)

    return installed


__all__ = [
    "HOMEBREW_PACKAGES",
    "XCODE_DOWNLOAD_HINT",
    "ensure_host_tools",
    "xcode_installed",
]
