"""Release manifest lookup.

Resolves the exact source tag of an Apple open source component from the
distribution-macOS release manifest:

    {"projects": [{"project": "bootstrap_cmds", "tag": "bootstrap_cmds-136"}, ...]}

Each resolution performs its own fetch; a manifest failure only affects
the stage that asked for it.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from xnu_builder.errors import ResolutionError
from xnu_builder.releases.catalog import ReleaseInfo

logger = logging.getLogger(__name__)

# Timeout for manifest requests (seconds)
MANIFEST_TIMEOUT = 30


def fetch_manifest(
    client: httpx.Client,
    url: str,
    timeout: float = MANIFEST_TIMEOUT,
) -> Any:
    """Fetch and decode a JSON manifest.

    Args:
        client: HTTPX client instance.
        url: Manifest URL.
        timeout: Request timeout in seconds.

    Returns:
        Decoded JSON document.

    Raises:
        ResolutionError: If the fetch fails or the body is not JSON.
    """
    logger.debug("Fetching manifest from %s", url)

    try:
        response = client.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
        return response.json()

    except httpx.HTTPStatusError as e:
        raise ResolutionError(
            f"HTTP error fetching manifest {url}: {e.response.status_code}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise ResolutionError(
            f"Timeout fetching manifest {url}",
            code="timeout",
        ) from e
    except httpx.RequestError as e:
        raise ResolutionError(
            f"Network error fetching manifest {url}: {e}",
            code="network_error",
        ) from e
    except ValueError as e:
        raise ResolutionError(
            f"Manifest at {url} is not valid JSON: {e}",
            code="invalid_manifest",
        ) from e


def find_project_tag(manifest: Any, project: str) -> str:
    """Select the tag of a project from a release manifest.

    Args:
        manifest: Decoded release manifest.
        project: Project name to look up.

    Returns:
        Source revision tag.

    Raises:
        ResolutionError: If the manifest is malformed or has no such project.
    """
    projects = manifest.get("projects") if isinstance(manifest, dict) else None
    if not isinstance(projects, list):
        raise ResolutionError(
            "Release manifest has no 'projects' list",
            code="invalid_manifest",
        )

    for entry in projects:
        if isinstance(entry, dict) and entry.get("project") == project:
            tag = entry.get("tag")
            if not tag:
                raise ResolutionError(
                    f"Release manifest entry for {project} has no tag",
                    code="invalid_manifest",
                )
            return str(tag)

    raise ResolutionError(
        f"Project {project} not found in release manifest",
        code="project_not_found",
    )


class VersionResolver:
    """Resolves component source tags for one target macOS version.

    Args:
        client: HTTPX client instance.
        release: Catalog entry of the target version.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        client: httpx.Client,
        release: ReleaseInfo,
        timeout: float = MANIFEST_TIMEOUT,
    ) -> None:
        self.client = client
        self.release = release
        self.timeout = timeout

    @property
    def manifest_url(self) -> str:
        return self.release.release_url

    def resolve(self, component: str) -> str:
        """Resolve the source tag of a component.

        Args:
            component: Project name as listed in the manifest.

        Returns:
            Source revision tag.

        Raises:
            ResolutionError: Fetch failure or missing entry.
        """
        manifest = fetch_manifest(self.client, self.manifest_url, self.timeout)
        tag = find_project_tag(manifest, component)
        logger.info(
            "Resolved %s to %s (macOS %s)",
            component,
            tag,
            self.release.macos_version,
        )
        return tag


__all__ = [
    "MANIFEST_TIMEOUT",
    "VersionResolver",
    "fetch_manifest",
    "find_project_tag",
]
