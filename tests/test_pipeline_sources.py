"""Tests for source checkout and patching."""

import pytest
from conftest import RecordingRunner

from xnu_builder.errors import DiscoveryError
from xnu_builder.pipeline.sources import apply_patch, clone_source, describe_source
from xnu_builder.pipeline.stages import BOOTSTRAP_CMDS, SourcePatch


class TestCloneSource:
    def test_clone_at_tag(self, tmp_path):
        runner = RecordingRunner()
        dest = tmp_path / "dtrace"

        clone_source(runner, "https://example.com/dtrace.git", dest, "dtrace-401")

        assert runner.calls == [
            [
                "git",
                "clone",
                "--branch",
                "dtrace-401",
                "https://example.com/dtrace.git",
                str(dest),
            ]
        ]

    def test_clone_default_branch(self, tmp_path):
        runner = RecordingRunner()

        clone_source(runner, "https://example.com/xnu.git", tmp_path / "xnu")

        assert "--branch" not in runner.calls[0]


class TestApplyPatch:
    def test_removes_ownership_flags(self, tmp_path):
        """The mig install script must not require root ownership."""
        script = tmp_path / "xcodescripts" / "install-mig.sh"
        script.parent.mkdir()
        script.write_text('install -m 555 -o root -g wheel "$SRC" "$DST"\n')

        [patch] = BOOTSTRAP_CMDS.patches
        assert apply_patch(tmp_path, patch) is True

        assert "-o root -g wheel" not in script.read_text()

    def test_patch_is_idempotent(self, tmp_path):
        target = tmp_path / "config.xcconfig"
        target.write_text("HEADER_SEARCH_PATHS = $(SDKROOT)/usr/local/include\n")
        patch = SourcePatch(
            "config.xcconfig", r"\$\(SDKROOT\)/usr/local/include", "$(FAKEROOT_DIR)/usr/local/include"
        )

        assert apply_patch(tmp_path, patch) is True
        patched = target.read_text()
        assert apply_patch(tmp_path, patch) is False
        assert target.read_text() == patched

    def test_missing_file(self, tmp_path):
        with pytest.raises(DiscoveryError) as exc_info:
            apply_patch(tmp_path, SourcePatch("missing.sh", "a", "b"))
        assert exc_info.value.code == "patch_target_missing"


class TestDescribeSource:
    def test_returns_revision(self, tmp_path):
        runner = RecordingRunner()
        runner.respond("git", "describe", stdout="bootstrap_cmds-136\n")

        assert describe_source(runner, tmp_path) == "bootstrap_cmds-136"

    def test_failure_returns_none(self, tmp_path):
        runner = RecordingRunner()
        runner.fail_on("git", "describe", exit_code=128)

        assert describe_source(runner, tmp_path) is None
