"""On-disk layout of a builder working directory.

    <work_dir>/
        .cache/                 source cache root
        build/                  per-component obj/sym trees and stage logs
        fakeroot/               shared staging root (DSTROOT) for every stage
        APFSMountPoint/         read-write mount of the boot volume
        xnu/, dtrace/, ...      one source checkout per component

The staging root persisting across runs is what makes stages skippable.
Completion checks go through FileSystemQuery so tests can fake the disk.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from xnu_builder.build_config import BuildConfiguration

logger = logging.getLogger(__name__)

CACHE_DIRNAME = ".cache"
BUILD_DIRNAME = "build"
STAGING_DIRNAME = "fakeroot"
LOG_DIRNAME = "logs"
MOUNT_POINT_DIRNAME = "APFSMountPoint"
HEADERS_SENTINEL_NAME = ".xnu_headers_installed"

# Object root of the kernel build; also matched by build artifact discovery
XNU_OBJ_DIRNAME = "xnu-10063.121.3~5"


class FileSystemQuery(Protocol):
    """Read-only filesystem queries used for completion checks."""

    def exists(self, path: Path) -> bool: ...

    def contains_named(self, root: Path, name: str) -> bool: ...

    def glob(self, root: Path, pattern: str) -> list[Path]: ...


class LocalFileSystem:
    """FileSystemQuery backed by the real disk."""

    def exists(self, path: Path) -> bool:
        return path.exists()

    def contains_named(self, root: Path, name: str) -> bool:
        if not root.is_dir():
            return False
        return any(True for _ in root.rglob(name))

    def glob(self, root: Path, pattern: str) -> list[Path]:
        if not root.is_dir():
            return []
        return sorted(root.glob(pattern))


@dataclass(frozen=True)
class ArtifactRoots:
    """Directory layout rooted at a working directory."""

    work_dir: Path

    @classmethod
    def from_work_dir(cls, work_dir: Path) -> ArtifactRoots:
        return cls(work_dir=work_dir.expanduser().resolve())

    @property
    def cache_root(self) -> Path:
        return self.work_dir / CACHE_DIRNAME

    @property
    def build_root(self) -> Path:
        return self.work_dir / BUILD_DIRNAME

    @property
    def staging_root(self) -> Path:
        return self.work_dir / STAGING_DIRNAME

    @property
    def log_root(self) -> Path:
        return self.build_root / LOG_DIRNAME

    @property
    def headers_sentinel(self) -> Path:
        return self.staging_root / HEADERS_SENTINEL_NAME

    @property
    def mount_point(self) -> Path:
        return self.work_dir / MOUNT_POINT_DIRNAME

    def source_dir(self, name: str) -> Path:
        return self.work_dir / name

    def object_root(self, name: str) -> Path:
        return self.build_root / name

    def symbol_root(self, name: str) -> Path:
        return self.build_root / name

    def stage_log(self, stage_name: str) -> Path:
        return self.log_root / f"{stage_name}.log"

    def ensure(self) -> None:
        """Create the cache, build and staging roots."""
        for path in (self.cache_root, self.build_root, self.staging_root):
            path.mkdir(parents=True, exist_ok=True)


# Completion predicates


@dataclass(frozen=True)
class NamedFileInStaging:
    """Done when a file with this name exists anywhere under the staging root."""

    name: str

    def is_satisfied(
        self, roots: ArtifactRoots, config: BuildConfiguration, fs: FileSystemQuery
    ) -> bool:
        return fs.contains_named(roots.staging_root, self.name)

    def describe(self, roots: ArtifactRoots, config: BuildConfiguration) -> str:
        return f"{roots.staging_root}/**/{self.name}"


@dataclass(frozen=True)
class StagedPath:
    """Done when a path relative to the staging root exists.

    When ``sentinel`` is set the path is created by the runner after the
    stage succeeds, because the stage output itself is not a stable marker.
    """

    relative_path: str
    sentinel: bool = False

    def path(self, roots: ArtifactRoots) -> Path:
        return roots.staging_root / self.relative_path

    def is_satisfied(
        self, roots: ArtifactRoots, config: BuildConfiguration, fs: FileSystemQuery
    ) -> bool:
        return fs.exists(self.path(roots))

    def describe(self, roots: ArtifactRoots, config: BuildConfiguration) -> str:
        return str(self.path(roots))


@dataclass(frozen=True)
class KernelImageBuilt:
    """Done when the kernel binary for the configuration has been built."""

    obj_dirname: str = XNU_OBJ_DIRNAME

    def pattern(self, config: BuildConfiguration) -> str:
        return f"{config.kernel_variant.value}*/{config.kernel_file_name}"

    def is_satisfied(
        self, roots: ArtifactRoots, config: BuildConfiguration, fs: FileSystemQuery
    ) -> bool:
        return bool(
            fs.glob(roots.build_root / self.obj_dirname, self.pattern(config))
        )

    def describe(self, roots: ArtifactRoots, config: BuildConfiguration) -> str:
        return str(roots.build_root / self.obj_dirname / self.pattern(config))


CompletionPredicate = NamedFileInStaging | StagedPath | KernelImageBuilt


# Cleaning

# Dependency checkouts removed by clean; the kernel checkout is kept
DEPENDENCY_CHECKOUTS = (
    "bootstrap_cmds",
    "dtrace",
    "AvailabilityVersions",
    "libplatform",
    "libdispatch",
)


def clean_targets(roots: ArtifactRoots) -> list[Path]:
    """List the paths removed by a clean."""
    return [
        roots.build_root,
        roots.staging_root,
        *(roots.source_dir(name) for name in DEPENDENCY_CHECKOUTS),
    ]


def clean_workspace(targets: list[Path]) -> list[Path]:
    """Delete clean targets.

    Args:
        targets: Paths from clean_targets().

    Returns:
        The paths that existed and were removed.
    """
    removed: list[Path] = []
    for path in targets:
        if not path.exists():
            logger.info("Nothing to delete at %s", path)
            continue
        logger.info("Deleting %s", path)
        shutil.rmtree(path)
        removed.append(path)
    return removed


__all__ = [
    "ArtifactRoots",
    "CompletionPredicate",
    "DEPENDENCY_CHECKOUTS",
    "FileSystemQuery",
    "HEADERS_SENTINEL_NAME",
    "KernelImageBuilt",
    "LocalFileSystem",
    "NamedFileInStaging",
    "StagedPath",
    "XNU_OBJ_DIRNAME",
    "clean_targets",
    "clean_workspace",
]
