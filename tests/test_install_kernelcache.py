"""Tests for kernel collection builds."""

import pytest
from conftest import RecordingRunner

from xnu_builder.errors import ConfigurationError, DiscoveryError, ExternalToolFailure
from xnu_builder.install.kernelcache import (
    ELIDED_IDENTIFIERS,
    build_kernel_cache,
    compose_kmutil_command,
)
from xnu_builder.pipeline.artifacts import locate_kernel_build


class TestComposeKmutilCommand:
    def test_command(self, roots, x86_config, kernel_build):
        kernel = kernel_build(x86_config)
        location = locate_kernel_build(roots, x86_config)

        cmd = compose_kmutil_command(location, "development")

        assert cmd[:2] == ["kmutil", "create"]
        assert cmd[cmd.index("-k") + 1] == str(kernel)
        assert cmd[cmd.index("-B") + 1] == str(
            kernel.parent / "BootKernelExtensions.kc"
        )
        assert cmd[cmd.index("--variant-suffix") + 1] == "development"
        assert cmd.count("--elide-identifier") == len(ELIDED_IDENTIFIERS)


class TestBuildKernelCache:
    def test_returns_suffixed_collections(self, roots, x86_config, kernel_build):
        kernel = kernel_build(x86_config)
        runner = RecordingRunner()

        artifacts = build_kernel_cache(roots, x86_config, runner)

        assert len(runner.commands("kmutil")) == 1
        assert artifacts.kernel_image_path == kernel
        assert artifacts.boot_extensions_path == (
            kernel.parent / "BootKernelExtensions.kc.development"
        )
        assert artifacts.system_extensions_path == (
            kernel.parent / "SystemKernelExtensions.kc.development"
        )
        assert artifacts.has_collections

    def test_arm64_not_supported(self, roots, arm_config):
        runner = RecordingRunner()

        with pytest.raises(ConfigurationError) as exc_info:
            build_kernel_cache(roots, arm_config, runner)

        assert exc_info.value.code == "kernel_cache_unsupported"
        assert runner.calls == []

    def test_requires_built_kernel(self, roots, x86_config):
        with pytest.raises(DiscoveryError):
            build_kernel_cache(roots, x86_config, RecordingRunner())

    def test_kmutil_failure(self, roots, x86_config, kernel_build):
        kernel_build(x86_config)
        runner = RecordingRunner()
        runner.fail_on("kmutil", exit_code=71)

        with pytest.raises(ExternalToolFailure):
            build_kernel_cache(roots, x86_config, runner)
