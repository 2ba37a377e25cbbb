"""Release resolution module.

This module handles:
- The catalog of supported macOS versions
- Component tag resolution against release manifests
- Kernel Debug Kit installation
"""

from xnu_builder.releases.catalog import DEFAULT_RELEASE, ReleaseInfo, get_release
from xnu_builder.releases.manifest import VersionResolver

__all__ = ["DEFAULT_RELEASE", "ReleaseInfo", "VersionResolver", "get_release"]
