"""Smoke tests for the CLI.

These tests verify CLI behavior without network access or external
tools; the build and install services are replaced where an action would
reach them.
"""

import pytest
from typer.testing import CliRunner

from xnu_builder import __version__
from xnu_builder.cli import app
from xnu_builder.errors import ExternalToolFailure, PipelineError
from xnu_builder.install.bootargs import VerificationWarning
from xnu_builder.install.machine import REBOOT_PROMPT, InstallReport
from xnu_builder.pipeline.runner import StageOutcome
from xnu_builder.pipeline.service import BuildResult
from xnu_builder.types import KernelArtifactSet, StageStatus

runner = CliRunner()


@pytest.fixture(autouse=True)
def work_dir(tmp_path, monkeypatch):
    """Point the builder at a temporary working directory."""
    monkeypatch.setenv("XNU_BUILDER_WORK_DIR", str(tmp_path))
    for name in ("KERNEL_CONFIG", "ARCH_CONFIG", "MACHINE_CONFIG", "MACOS_VERSION"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestCLIHelp:
    """Test CLI help and version options."""

    def test_help_returns_zero(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Build the XNU kernel" in result.output

    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_short_version_flag(self) -> None:
        result = runner.invoke(app, ["-v"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_show_config(self) -> None:
        result = runner.invoke(app, ["--show-config"])
        assert result.exit_code == 0
        assert "kernel_build_jobs" in result.output

    def test_no_args_shows_usage(self) -> None:
        result = runner.invoke(app, [])
        assert "Usage" in result.output

    def test_unknown_action(self) -> None:
        result = runner.invoke(app, ["flash"])
        assert result.exit_code != 0


class TestConfigurationErrors:
    def test_machine_help_lists_machines(self) -> None:
        result = runner.invoke(app, ["build", "-m", "help"])
        assert result.exit_code == 0
        assert "VMAPPLE" in result.output
        assert "T8103" in result.output

    def test_invalid_arch(self) -> None:
        result = runner.invoke(app, ["build", "-a", "SPARC"])
        assert result.exit_code == 1
        assert "Invalid architecture" in result.output

    def test_arm64_requires_machine(self) -> None:
        result = runner.invoke(app, ["build", "-a", "ARM64"])
        assert result.exit_code == 1
        assert "Machine configuration is required" in result.output

    def test_machine_not_applicable_to_x86(self) -> None:
        result = runner.invoke(app, ["install", "-a", "x86_64", "-m", "T8103"])
        assert result.exit_code == 1
        assert "not applicable" in result.output

    def test_clean_ignores_invalid_arch(self, monkeypatch) -> None:
        """clean does not depend on the architecture configuration."""
        monkeypatch.setenv("ARCH_CONFIG", "SPARC")
        result = runner.invoke(app, ["clean"])
        assert result.exit_code == 0
        assert "Nothing to clean" in result.output


class TestClean:
    def test_confirmed(self, work_dir) -> None:
        (work_dir / "build").mkdir()
        (work_dir / "xnu").mkdir()

        result = runner.invoke(app, ["clean", "-y"])

        assert result.exit_code == 0
        assert "cleaned" in result.output
        assert not (work_dir / "build").exists()
        assert (work_dir / "xnu").exists()

    def test_declined(self, work_dir) -> None:
        (work_dir / "fakeroot").mkdir()

        result = runner.invoke(app, ["clean"], input="n\n")

        assert result.exit_code == 0
        assert "Aborted" in result.output
        assert (work_dir / "fakeroot").exists()


class TestFetch:
    def test_existing_source(self, work_dir) -> None:
        (work_dir / "xnu").mkdir()

        result = runner.invoke(app, ["fetch"])

        assert result.exit_code == 0
        assert "XNU source ready" in result.output


class TestBuild:
    def test_build_then_install(self, monkeypatch, work_dir) -> None:
        kernel = work_dir / "kernel.development"
        calls = []

        def fake_build(config, settings=None):
            calls.append(("build", config))
            return BuildResult(
                config=config,
                artifacts=KernelArtifactSet(kernel_image_path=kernel),
                outcomes=[StageOutcome("dtrace", StageStatus.SKIPPED)],
            )

        def fake_install(config, confirm, settings=None):
            calls.append(("install", config))
            return InstallReport(
                warnings=[VerificationWarning("dk=0", "dk=0 is not set in boot-args.")]
            )

        monkeypatch.setattr("xnu_builder.pipeline.service.build_kernel", fake_build)
        monkeypatch.setattr("xnu_builder.install.service.install_kernel", fake_install)

        result = runner.invoke(app, ["build", "-y"])

        assert result.exit_code == 0, result.output
        assert "Falling back to defaults" in result.output
        assert "Skipped (already built): dtrace" in result.output
        assert "dk=0 is not set" in result.output
        assert [name for name, _ in calls] == ["build", "install"]
        assert calls[0][1].is_default

    def test_install_declined(self, monkeypatch, work_dir) -> None:
        def fake_build(config, settings=None):
            return BuildResult(
                config=config,
                artifacts=KernelArtifactSet(kernel_image_path=work_dir / "kernel"),
            )

        monkeypatch.setattr("xnu_builder.pipeline.service.build_kernel", fake_build)

        result = runner.invoke(app, ["build", "-k", "release"], input="n\n")

        assert result.exit_code == 0
        assert "Custom configuration provided" in result.output
        assert "Install skipped." in result.output

    def test_stage_failure_points_at_log(self, monkeypatch, work_dir) -> None:
        log_path = work_dir / "build" / "logs" / "xnu.log"

        def fake_build(config, settings=None):
            raise PipelineError(
                "xnu",
                ExternalToolFailure("make failed with exit code 2", log_path=log_path),
            )

        monkeypatch.setattr("xnu_builder.pipeline.service.build_kernel", fake_build)

        result = runner.invoke(app, ["build"])

        assert result.exit_code == 1
        assert "Stage 'xnu' failed" in result.output
        assert "See log:" in result.output

    def test_yes_still_asks_before_reboot(self, monkeypatch, work_dir) -> None:
        answers = []

        def fake_build(config, settings=None):
            return BuildResult(
                config=config,
                artifacts=KernelArtifactSet(kernel_image_path=work_dir / "kernel"),
            )

        def fake_install(config, confirm, settings=None):
            answers.append(confirm(REBOOT_PROMPT))
            return InstallReport()

        monkeypatch.setattr("xnu_builder.pipeline.service.build_kernel", fake_build)
        monkeypatch.setattr("xnu_builder.install.service.install_kernel", fake_install)

        result = runner.invoke(app, ["build", "-y"], input="n\n")

        assert result.exit_code == 0, result.output
        assert answers == [False]
        assert REBOOT_PROMPT in result.output
        assert "✓ Kernel installed" in result.output
