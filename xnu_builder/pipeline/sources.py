"""Source checkouts for pipeline stages.

This module handles:
- Cloning a component repository at an exact tag
- Applying in-place source patches before building
- Describing the checked-out revision
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from xnu_builder.errors import DiscoveryError
from xnu_builder.pipeline.stages import SourcePatch
from xnu_builder.process import CommandRunner

logger = logging.getLogger(__name__)


def clone_source(
    runner: CommandRunner,
    repository: str,
    dest: Path,
    tag: str | None = None,
    log_path: Path | None = None,
) -> Path:
    """Clone a repository, optionally at a tag.

    Args:
        runner: Command runner.
        repository: Git repository URL.
        dest: Checkout directory (must not exist).
        tag: Branch or tag to check out; default branch if None.
        log_path: Optional log file for git output.

    Returns:
        The checkout directory.

    Raises:
        ExternalToolFailure: If git fails.
    """
    cmd = ["git", "clone"]
    if tag:
        cmd.extend(["--branch", tag])
    cmd.extend([repository, str(dest)])

    logger.info("Cloning %s%s into %s", repository, f" at {tag}" if tag else "", dest)
    runner.run(cmd, log_path=log_path)
    return dest


def apply_patch(source_root: Path, patch: SourcePatch) -> bool:
    """Apply a regex substitution to a source file.

    Re-applying a patch is a no-op.

    Args:
        source_root: Stage source root.
        patch: Patch to apply.

    Returns:
        True if the file changed.

    Raises:
        DiscoveryError: If the file to patch does not exist.
    """
    path = source_root / patch.relative_path
    if not path.is_file():
        raise DiscoveryError(
            f"Cannot patch missing source file: {path}",
            code="patch_target_missing",
        )

    original = path.read_text()
    patched = re.sub(patch.pattern, patch.replacement, original, flags=re.MULTILINE)
    if patched == original:
        logger.debug("Patch already applied to %s", path)
        return False

    path.write_text(patched)
    logger.info("Patched %s", path)
    return True


def describe_source(runner: CommandRunner, source_root: Path) -> str | None:
    """Return `git describe --always` of a checkout, or None if unavailable."""
    result = runner.run(
        ["git", "describe", "--always"],
        cwd=source_root,
        capture=True,
        check=False,
    )
    if not result.success:
        logger.warning("Could not describe source revision of %s", source_root)
        return None
    return result.stdout.strip() or None


__all__ = ["apply_patch", "clone_source", "describe_source"]
