"""Kernel Debug Kit installation.

This module handles:
- Looking up the debug kit download URL in the KdkSupportPkg manifest
- Streaming the DMG download
- Mounting the DMG and running the package installer

The XNU header and kernel stages read KDKROOT, so the kit must be present
before the pipeline runs.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from xnu_builder.errors import ResolutionError
from xnu_builder.process import CommandRunner
from xnu_builder.releases.catalog import ReleaseInfo
from xnu_builder.releases.manifest import MANIFEST_TIMEOUT, fetch_manifest

logger = logging.getLogger(__name__)

# Volume the debug kit DMG mounts as
KDK_VOLUME = Path("/Volumes/Kernel Debug Kit")
KDK_PACKAGE = KDK_VOLUME / "KernelDebugKit.pkg"

# Timeout for the DMG download (seconds)
DOWNLOAD_TIMEOUT = 900

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB


@dataclass
class DownloadResult:
    """Result of a debug kit download."""

    path: Path
    size_bytes: int


def find_kdk_url(manifest: Any, kdk_name: str) -> str:
    """Find the download URL of a debug kit by name.

    Args:
        manifest: Decoded debug kit manifest (list of {name, url}).
        kdk_name: Debug kit name, e.g. 'Kernel Debug Kit 14.5 build 23F79'.

    Returns:
        Download URL.

    Raises:
        ResolutionError: If no entry matches.
    """
    if isinstance(manifest, list):
        for entry in manifest:
            if isinstance(entry, dict) and entry.get("name") == kdk_name:
                url = entry.get("url")
                if url:
                    return str(url)

    raise ResolutionError(
        f"Failed to find URL for {kdk_name}",
        code="kdk_not_found",
    )


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> DownloadResult:
    """Stream a file to disk.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        DownloadResult with path and size.

    Raises:
        ResolutionError: If the download fails.
    """
    logger.info("Downloading %s to %s", url, dest_path)

    try:
        with client.stream(
            "GET", url, timeout=timeout, follow_redirects=True
        ) as response:
            response.raise_for_status()

            total_bytes = 0
            dest_path.parent.mkdir(parents=True, exist_ok=True)

            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    total_bytes += len(chunk)

    except httpx.HTTPStatusError as e:
        dest_path.unlink(missing_ok=True)
        raise ResolutionError(
            f"HTTP error downloading {url}: {e.response.status_code}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        dest_path.unlink(missing_ok=True)
        raise ResolutionError(f"Timeout downloading {url}", code="timeout") from e
    except httpx.RequestError as e:
        dest_path.unlink(missing_ok=True)
        raise ResolutionError(
            f"Network error downloading {url}: {e}",
            code="network_error",
        ) from e

    logger.info("Downloaded %s (%d bytes)", dest_path.name, total_bytes)
    return DownloadResult(path=dest_path, size_bytes=total_bytes)


def install_kdk_image(dmg_path: Path, install_dir: Path, runner: CommandRunner) -> None:
    """Mount a debug kit DMG and run its installer package.

    Args:
        dmg_path: Downloaded DMG.
        install_dir: Parent directory of installed debug kits.
        runner: Command runner.

    Raises:
        ExternalToolFailure: If any of the tools fail.
    """
    logger.info("Installing Kernel Debug Kit from %s", dmg_path)
    runner.run(["hdiutil", "attach", str(dmg_path)])

    if not install_dir.is_dir():
        runner.run(["sudo", "mkdir", "-p", str(install_dir)])
        runner.run(["sudo", "chmod", "755", str(install_dir)])

    runner.run(["sudo", "installer", "-pkg", str(KDK_PACKAGE), "-target", "/"])
    runner.run(["hdiutil", "detach", str(KDK_VOLUME)])


def ensure_debug_kit(
    client: httpx.Client,
    release: ReleaseInfo,
    runner: CommandRunner,
    manifest_url: str,
    manifest_timeout: float = MANIFEST_TIMEOUT,
    download_timeout: float = DOWNLOAD_TIMEOUT,
    tmp_dir: Path | None = None,
) -> Path:
    """Ensure the debug kit for a release is installed.

    Args:
        client: HTTPX client instance.
        release: Target release catalog entry.
        runner: Command runner.
        manifest_url: URL of the debug kit manifest.
        manifest_timeout: Manifest request timeout in seconds.
        download_timeout: DMG download timeout in seconds.
        tmp_dir: Directory for the temporary DMG (system default if None).

    Returns:
        Path of the installed debug kit (KDKROOT).

    Raises:
        ResolutionError: Manifest lookup or download failed.
        ExternalToolFailure: Mounting or installing failed.
    """
    logger.info(
        "Checking if the Kernel Debug Kit is installed for macOS %s",
        release.macos_version,
    )
    if release.kdk_root.is_dir():
        logger.info("%s is already installed", release.kdk_name)
        return release.kdk_root

    manifest = fetch_manifest(client, manifest_url, manifest_timeout)
    url = find_kdk_url(manifest, release.kdk_name)

    with tempfile.TemporaryDirectory(dir=tmp_dir) as work:
        dmg_path = Path(work) / "KDK.dmg"
        download_file(client, url, dmg_path, timeout=download_timeout)
        install_kdk_image(dmg_path, release.kdk_root.parent, runner)

    logger.info("Installed %s at %s", release.kdk_name, release.kdk_root)
    return release.kdk_root


__all__ = [
    "DownloadResult",
    "KDK_PACKAGE",
    "KDK_VOLUME",
    "download_file",
    "ensure_debug_kit",
    "find_kdk_url",
    "install_kdk_image",
]
