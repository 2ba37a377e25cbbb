"""Tests for host toolchain checks."""

import logging

import pytest
from conftest import RecordingRunner

from xnu_builder.errors import ExternalToolFailure
from xnu_builder.pipeline.toolchain import ensure_host_tools, xcode_installed


def _which(available: set[str]):
    return lambda name: f"/opt/homebrew/bin/{name}" if name in available else None


class TestXcodeInstalled:
    def test_detects_versioned_bundle(self, tmp_path):
        (tmp_path / "Xcode_15.4.app").mkdir()
        assert xcode_installed(tmp_path) is True

    def test_missing(self, tmp_path):
        assert xcode_installed(tmp_path) is False


class TestEnsureHostTools:
    def test_nothing_to_install(self, tmp_path):
        (tmp_path / "Xcode.app").mkdir()
        runner = RecordingRunner()

        installed = ensure_host_tools(
            runner, which=_which({"brew", "cmake", "ninja"}), applications_dir=tmp_path
        )

        assert installed == []
        assert runner.calls == []

    def test_installs_missing_packages(self, tmp_path):
        (tmp_path / "Xcode.app").mkdir()
        runner = RecordingRunner()

        installed = ensure_host_tools(
            runner, which=_which({"brew", "cmake"}), applications_dir=tmp_path
        )

        assert installed == ["ninja"]
        assert runner.calls == [["brew", "install", "ninja"]]

    def test_homebrew_missing(self, tmp_path):
        runner = RecordingRunner()

        with pytest.raises(ExternalToolFailure) as exc_info:
            ensure_host_tools(runner, which=_which(set()), applications_dir=tmp_path)

        assert exc_info.value.code == "homebrew_missing"
        assert runner.calls == []

    def test_missing_xcode_is_reported_not_fatal(self, tmp_path, caplog):
        runner = RecordingRunner()

        with caplog.at_level(logging.ERROR):
            ensure_host_tools(
                runner,
                which=_which({"brew", "cmake", "ninja"}),
                applications_dir=tmp_path,
            )

        assert "Xcode is not installed" in caplog.text
