"""Shared fixtures and fakes for xnu_builder tests.

The fakes stand in for the external boundaries (subprocess, the disk and
diskutil) so pipeline and install logic can run without macOS tooling.
"""

import shlex
from collections.abc import Callable
from pathlib import Path

import pytest

from xnu_builder.build_config import BuildConfiguration
from xnu_builder.errors import ExternalToolFailure
from xnu_builder.install.disk import BootVolumeHandle, PartitionEntry
from xnu_builder.layout import XNU_OBJ_DIRNAME, ArtifactRoots
from xnu_builder.process import CommandResult
from xnu_builder.releases.catalog import DEFAULT_RELEASE
from xnu_builder.types import Architecture, KernelVariant


class RecordingRunner:
    """CommandRunner double that records every command.

    Commands are matched by argv prefix for scripted output, failures and
    side effects (e.g. creating the files a tool would produce).
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.cwds: list[Path | None] = []
        self.log_paths: list[Path | None] = []
        self._outputs: list[tuple[tuple[str, ...], str]] = []
        self._failures: list[tuple[tuple[str, ...], int]] = []
        self._effects: list[tuple[tuple[str, ...], Callable[[list[str]], None]]] = []

    def respond(self, *prefix: str, stdout: str) -> None:
        self._outputs.append((prefix, stdout))

    def fail_on(self, *prefix: str, exit_code: int = 1) -> None:
        self._failures.append((prefix, exit_code))

    def on(self, *prefix: str, effect: Callable[[list[str]], None]) -> None:
        self._effects.append((prefix, effect))

    @staticmethod
    def _matches(cmd: list[str], prefix: tuple[str, ...]) -> bool:
        return tuple(cmd[: len(prefix)]) == prefix

    def commands(self, program: str) -> list[list[str]]:
        """Calls whose program (after sudo) is the given name."""
        result = []
        for cmd in self.calls:
            argv = cmd[1:] if cmd and cmd[0] == "sudo" else cmd
            if argv and argv[0] == program:
                result.append(cmd)
        return result

    def run(
        self,
        cmd: list[str],
        *,
        cwd: Path | None = None,
        log_path: Path | None = None,
        capture: bool = False,
        check: bool = True,
    ) -> CommandResult:
        self.calls.append(list(cmd))
        self.cwds.append(cwd)
        self.log_paths.append(log_path)

        exit_code = 0
        for prefix, code in self._failures:
            if self._matches(cmd, prefix):
                exit_code = code
        if exit_code and check:
            raise ExternalToolFailure(
                f"{cmd[0]} failed with exit code {exit_code}",
                command=shlex.join(cmd),
                exit_code=exit_code,
                log_path=log_path,
            )

        for prefix, effect in self._effects:
            if self._matches(cmd, prefix):
                effect(list(cmd))

        stdout = ""
        for prefix, output in self._outputs:
            if self._matches(cmd, prefix):
                stdout = output

        return CommandResult(
            command=shlex.join(cmd),
            exit_code=exit_code,
            stdout=stdout if capture else "",
            log_path=log_path,
        )


class FakeFileSystem:
    """In-memory FileSystemQuery over a set of existing paths."""

    def __init__(self, paths: list[Path] | None = None) -> None:
        self.paths: set[Path] = set(paths or [])

    def add(self, path: Path) -> None:
        self.paths.add(Path(path))

    def exists(self, path: Path) -> bool:
        return any(p == path or path in p.parents for p in self.paths)

    def contains_named(self, root: Path, name: str) -> bool:
        return any(p.name == name and root in p.parents for p in self.paths)

    def glob(self, root: Path, pattern: str) -> list[Path]:
        return sorted(
            p
            for p in self.paths
            if root in p.parents and p.relative_to(root).match(pattern)
        )


class FakeDiskQuery:
    """DiskQuery returning fixed answers."""

    def __init__(
        self,
        volume: BootVolumeHandle,
        partitions: list[PartitionEntry],
        error: Exception | None = None,
    ) -> None:
        self.volume = volume
        self.partitions = partitions
        self.error = error
        self.queried_disks: list[str] = []

    def boot_volume(self) -> BootVolumeHandle:
        if self.error is not None:
            raise self.error
        return self.volume

    def list_partitions(self, whole_disk: str) -> list[PartitionEntry]:
        self.queried_disks.append(whole_disk)
        return self.partitions


@pytest.fixture
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def fake_fs() -> FakeFileSystem:
    return FakeFileSystem()


@pytest.fixture
def roots(tmp_path: Path) -> ArtifactRoots:
    return ArtifactRoots.from_work_dir(tmp_path)


@pytest.fixture
def x86_config() -> BuildConfiguration:
    return BuildConfiguration(
        kernel_variant=KernelVariant.DEVELOPMENT,
        architecture=Architecture.X86_64,
        machine=None,
        target_os_version=DEFAULT_RELEASE.macos_version,
    )


@pytest.fixture
def arm_config() -> BuildConfiguration:
    return BuildConfiguration(
        kernel_variant=KernelVariant.RELEASE,
        architecture=Architecture.ARM64,
        machine="VMAPPLE",
        target_os_version=DEFAULT_RELEASE.macos_version,
    )


@pytest.fixture
def boot_volume() -> BootVolumeHandle:
    return BootVolumeHandle(
        device_identifier="disk3s1s1",
        parent_whole_disk="disk3",
        volume_name="Macintosh HD",
        mount_point="/",
    )


@pytest.fixture
def fake_disk(boot_volume: BootVolumeHandle) -> FakeDiskQuery:
    return FakeDiskQuery(
        boot_volume,
        [
            PartitionEntry("disk3s1", "Macintosh HD"),
            PartitionEntry("disk3s2", "Preboot"),
            PartitionEntry("disk3s5", "Macintosh HD - Data"),
        ],
    )


def make_kernel_build(
    roots: ArtifactRoots, config: BuildConfiguration, variant_dir: str | None = None
) -> Path:
    """Create a kernel binary where the xnu stage puts it."""
    folder = variant_dir or (
        f"{config.kernel_variant.value}_{config.architecture.value}"
    )
    kernel = roots.build_root / XNU_OBJ_DIRNAME / folder / config.kernel_file_name
    kernel.parent.mkdir(parents=True)
    kernel.write_bytes(b"\xcf\xfa\xed\xfe")
    return kernel


@pytest.fixture
def kernel_build(
    roots: ArtifactRoots,
) -> Callable[..., Path]:
    """Factory creating a built kernel under the test working directory."""

    def factory(config: BuildConfiguration, variant_dir: str | None = None) -> Path:
        return make_kernel_build(roots, config, variant_dir)

    return factory
