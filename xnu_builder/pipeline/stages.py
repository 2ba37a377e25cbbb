"""Pipeline stage declarations.

Each stage is one Apple open source component: where its source comes
from, how to tell it is already installed into the staging root, and the
external toolchain invocations that build and install it.

Stages run in the fixed order of PIPELINE_STAGES. Later stages compile
against headers and libraries that earlier stages installed into the
staging root (DSTROOT), so the order is a real build dependency.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from xnu_builder.build_config import BuildConfiguration
from xnu_builder.layout import (
    HEADERS_SENTINEL_NAME,
    XNU_OBJ_DIRNAME,
    ArtifactRoots,
    CompletionPredicate,
    KernelImageBuilt,
    NamedFileInStaging,
    StagedPath,
)
from xnu_builder.releases.catalog import ReleaseInfo

# Tightbeam compiler is not part of the open source release
TIGHTBEAMC = "tightbeamc-not-supported"

XNU_SOURCE_DIRNAME = "xnu"


@dataclass(frozen=True)
class Invocation:
    """One external command of a stage."""

    argv: list[str]
    cwd: Path


@dataclass(frozen=True)
class SourcePatch:
    """In-place regex substitution applied to a source file before building.

    Attributes:
        relative_path: File relative to the stage source root.
        pattern: Regular expression (multiline mode).
        replacement: Replacement text.
    """

    relative_path: str
    pattern: str
    replacement: str


@dataclass(frozen=True)
class StageContext:
    """Everything a stage needs to compose its invocations."""

    config: BuildConfiguration
    roots: ArtifactRoots
    release: ReleaseInfo
    source_root: Path
    object_root: Path
    symbol_root: Path
    build_jobs: int = 8
    kernel_build_jobs: int = 12
    source_version: str | None = None

    @property
    def dst_root(self) -> Path:
        return self.roots.staging_root

    def bindings(self, *extra: str) -> list[str]:
        """Standard OBJROOT/SYMROOT/DSTROOT bindings plus named extras."""
        values = {
            "SRCROOT": str(self.source_root),
            "FAKEROOT_DIR": str(self.roots.staging_root),
            "KDKROOT": str(self.release.kdk_root),
            "TIGHTBEAMC": TIGHTBEAMC,
            "RC_DARWIN_KERNEL_VERSION": self.release.darwin_kernel_version,
        }
        args = [
            f"OBJROOT={self.object_root}",
            f"SYMROOT={self.symbol_root}",
            f"DSTROOT={self.dst_root}",
        ]
        args.extend(f"{name}={values[name]}" for name in extra)
        return args


ComposeFn = Callable[[StageContext], list[Invocation]]


@dataclass(frozen=True)
class Stage:
    """Declaration of one pipeline stage.

    Attributes:
        name: Stage name, also used for the log file.
        project: Apple open source project; cloned from the open source
            distributions at the manifest tag. None means the configured
            kernel repository at its default branch.
        source_subdir: Source root relative to the working directory.
        object_dir: OBJROOT relative to the build root.
        symbol_dir: SYMROOT relative to the build root.
        completion: Predicate telling whether the stage output exists.
        compose: Builds the external invocations for a context.
        patches: Source edits applied before building.
        renames: (from, to) paths relative to the staging root, moved after
            the invocations succeed.
        needs_source_version: Whether `git describe` of the checkout is
            passed to the build.
    """

    name: str
    project: str | None
    source_subdir: str
    object_dir: str
    symbol_dir: str
    completion: CompletionPredicate
    compose: ComposeFn
    patches: tuple[SourcePatch, ...] = field(default=())
    renames: tuple[tuple[str, str], ...] = field(default=())
    needs_source_version: bool = False

    @property
    def checkout_dirname(self) -> str:
        """Top-level checkout directory the source lives in."""
        return Path(self.source_subdir).parts[0]


def _compose_bootstrap_cmds(ctx: StageContext) -> list[Invocation]:
    argv = [
        "xcodebuild",
        "install",
        "-sdk",
        "macosx",
        "-project",
        "mig.xcodeproj",
        "ARCHS=arm64 x86_64",
        "CODE_SIGN_IDENTITY=-",
        *ctx.bindings(),
    ]
    if ctx.source_version:
        argv.append(f"RC_ProjectNameAndSourceVersion={ctx.source_version}")
    return [Invocation(argv, ctx.source_root)]


def _compose_dtrace(ctx: StageContext) -> list[Invocation]:
    argv = [
        "xcodebuild",
        "install",
        "-sdk",
        "macosx",
        "-target",
        "ctfconvert",
        "-target",
        "ctfdump",
        "-target",
        "ctfmerge",
        "ARCHS=arm64 x86_64",
        "CODE_SIGN_IDENTITY=-",
        *ctx.bindings(),
    ]
    return [Invocation(argv, ctx.source_root)]


def _compose_availability_versions(ctx: StageContext) -> list[Invocation]:
    argv = ["make", "install", f"-j{ctx.build_jobs}", *ctx.bindings()]
    return [Invocation(argv, ctx.source_root)]


def _compose_xnu_headers(ctx: StageContext) -> list[Invocation]:
    argv = [
        "make",
        "installhdrs",
        "SDKROOT=macosx",
        "ARCH_CONFIGS=X86_64 ARM64",
        *ctx.bindings(
            "FAKEROOT_DIR", "KDKROOT", "TIGHTBEAMC", "RC_DARWIN_KERNEL_VERSION"
        ),
    ]
    return [Invocation(argv, ctx.source_root)]


def _compose_libsyscall_headers(ctx: StageContext) -> list[Invocation]:
    argv = [
        "xcodebuild",
        "installhdrs",
        "-sdk",
        "macosx",
        f"TARGET_CONFIGS={ctx.config.target_configs}",
        "ARCHS=arm64 arm64e",
        "VALID_ARCHS=arm64 arm64e",
        *ctx.bindings("FAKEROOT_DIR"),
    ]
    return [Invocation(argv, ctx.source_root)]


def _compose_libplatform(ctx: StageContext) -> list[Invocation]:
    include_dir = ctx.dst_root / "usr" / "local" / "include"
    return [
        Invocation(
            ["ditto", str(ctx.source_root / subdir), str(include_dir)],
            ctx.source_root,
        )
        for subdir in ("include", "private")
    ]


def _compose_libdispatch(ctx: StageContext) -> list[Invocation]:
    argv = [
        "xcodebuild",
        "install",
        "-target",
        "libfirehose_kernel",
        "-sdk",
        "macosx",
        "ARCHS=x86_64 arm64e",
        "VALID_ARCHS=x86_64 arm64e",
        *ctx.bindings("FAKEROOT_DIR"),
    ]
    return [Invocation(argv, ctx.source_root)]


def _compose_xnu(ctx: StageContext) -> list[Invocation]:
    argv = [
        "make",
        "install",
        f"-j{ctx.kernel_build_jobs}",
        "VERBOSE=YES",
        "SDKROOT=macosx",
        f"TARGET_CONFIGS={ctx.config.target_configs}",
        "CONCISE=0",
        "LOGCOLORS=y",
        "BUILD_WERROR=0",
        "BUILD_LTO=0",
        *ctx.bindings(
            "SRCROOT",
            "FAKEROOT_DIR",
            "KDKROOT",
            "TIGHTBEAMC",
            "RC_DARWIN_KERNEL_VERSION",
        ),
    ]
    return [Invocation(argv, ctx.source_root)]


BOOTSTRAP_CMDS = Stage(
    name="bootstrap_cmds",
    project="bootstrap_cmds",
    source_subdir="bootstrap_cmds",
    object_dir="bootstrap_cmds.obj",
    symbol_dir="bootstrap_cmds.sym",
    completion=NamedFileInStaging("mig"),
    compose=_compose_bootstrap_cmds,
    patches=(
        # mig installs with root ownership, which needs sudo
        SourcePatch("xcodescripts/install-mig.sh", r"-o root -g wheel", ""),
    ),
    needs_source_version=True,
)

DTRACE = Stage(
    name="dtrace",
    project="dtrace",
    source_subdir="dtrace",
    object_dir="dtrace.obj",
    symbol_dir="dtrace.sym",
    completion=NamedFileInStaging("ctfmerge"),
    compose=_compose_dtrace,
)

AVAILABILITY_VERSIONS = Stage(
    name="AvailabilityVersions",
    project="AvailabilityVersions",
    source_subdir="AvailabilityVersions",
    object_dir="",
    symbol_dir="",
    completion=NamedFileInStaging("availability.pl"),
    compose=_compose_availability_versions,
)

XNU_HEADERS = Stage(
    name="xnu_headers",
    project=None,
    source_subdir=XNU_SOURCE_DIRNAME,
    object_dir="xnu-hdrs.obj",
    symbol_dir="xnu-hdrs.sym",
    completion=StagedPath(HEADERS_SENTINEL_NAME, sentinel=True),
    compose=_compose_xnu_headers,
)

LIBSYSCALL_HEADERS = Stage(
    name="libsyscall_headers",
    project=None,
    source_subdir=f"{XNU_SOURCE_DIRNAME}/libsyscall",
    object_dir="libsyscall.obj",
    symbol_dir="libsyscall.sym",
    completion=StagedPath("usr/include/os/proc.h"),
    compose=_compose_libsyscall_headers,
)

LIBPLATFORM = Stage(
    name="libplatform",
    project="libplatform",
    source_subdir="libplatform",
    object_dir="libplatform.obj",
    symbol_dir="libplatform.sym",
    completion=StagedPath("usr/local/include/_simple.h"),
    compose=_compose_libplatform,
)

LIBDISPATCH = Stage(
    name="libdispatch",
    project="libdispatch",
    source_subdir="libdispatch",
    object_dir="libfirehose_kernel.obj",
    symbol_dir="libfirehose_kernel.sym",
    completion=StagedPath("usr/local/lib/kernel/libfirehose_kernel.a"),
    compose=_compose_libdispatch,
    patches=(
        # Point the kernel firehose build at headers in the staging root
        SourcePatch(
            "xcodeconfig/libfirehose_kernel.xcconfig",
            r"\$\(SDKROOT\)/System/Library/Frameworks/Kernel\.framework/PrivateHeaders",
            "$(FAKEROOT_DIR)/System/Library/Frameworks/Kernel.framework/PrivateHeaders",
        ),
        SourcePatch(
            "xcodeconfig/libfirehose_kernel.xcconfig",
            r"\$\(SDKROOT\)/usr/local/include",
            "$(FAKEROOT_DIR)/usr/local/include",
        ),
    ),
    renames=(
        (
            "usr/local/lib/kernel/liblibfirehose_kernel.a",
            "usr/local/lib/kernel/libfirehose_kernel.a",
        ),
    ),
)

XNU = Stage(
    name="xnu",
    project=None,
    source_subdir=XNU_SOURCE_DIRNAME,
    object_dir=XNU_OBJ_DIRNAME,
    symbol_dir="xnu.sym",
    completion=KernelImageBuilt(),
    compose=_compose_xnu,
)

# Fixed build order: tools, headers, libraries, then the kernel
PIPELINE_STAGES: tuple[Stage, ...] = (
    BOOTSTRAP_CMDS,
    DTRACE,
    AVAILABILITY_VERSIONS,
    XNU_HEADERS,
    LIBSYSCALL_HEADERS,
    LIBPLATFORM,
    LIBDISPATCH,
    XNU,
)


__all__ = [
    "Invocation",
    "PIPELINE_STAGES",
    "SourcePatch",
    "Stage",
    "StageContext",
    "TIGHTBEAMC",
    "XNU_SOURCE_DIRNAME",
]
