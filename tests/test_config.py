"""Tests for configuration module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

from xnu_builder.config import Settings, get_settings, print_settings_json

BUILDER_VARIABLES = ("KERNEL_CONFIG", "ARCH_CONFIG", "MACHINE_CONFIG", "MACOS_VERSION")


def _clean_env() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if k not in BUILDER_VARIABLES}


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should default to a DEVELOPMENT X86_64 build for 14.5."""
        with patch.dict(os.environ, _clean_env(), clear=True):
            settings = Settings()

        assert settings.kernel_config == "DEVELOPMENT"
        assert settings.arch_config == "X86_64"
        assert settings.machine_config == "NONE"
        assert settings.macos_version == "14.5"
        assert settings.kdk_install_dir == Path("/Library/Developer/KDKs")
        assert settings.log_level == "INFO"
        assert settings.build_jobs == 8
        assert settings.kernel_build_jobs == 12
        assert settings.build_timeout is None

    def test_builder_variables_from_bare_env_names(self) -> None:
        """The builder variables keep their historical environment names."""
        with patch.dict(
            os.environ,
            {
                "KERNEL_CONFIG": "RELEASE",
                "ARCH_CONFIG": "ARM64",
                "MACHINE_CONFIG": "VMAPPLE",
                "MACOS_VERSION": "14.4",
            },
        ):
            settings = Settings()

        assert settings.kernel_config == "RELEASE"
        assert settings.arch_config == "ARM64"
        assert settings.machine_config == "VMAPPLE"
        assert settings.macos_version == "14.4"

    def test_settings_from_prefixed_env(self) -> None:
        """Other settings use the XNU_BUILDER_ prefix."""
        with patch.dict(
            os.environ,
            {
                "XNU_BUILDER_LOG_LEVEL": "DEBUG",
                "XNU_BUILDER_KERNEL_BUILD_JOBS": "4",
                "XNU_BUILDER_WORK_DIR": "/tmp/xnu-work",
            },
        ):
            settings = Settings()

        assert settings.log_level == "DEBUG"
        assert settings.kernel_build_jobs == 4
        assert settings.work_dir == Path("/tmp/xnu-work")


class TestGetSettings:
    """Test get_settings function."""

    def test_get_settings_returns_settings(self) -> None:
        """get_settings should return a Settings instance."""
        assert isinstance(get_settings(), Settings)


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_print_settings_json(self) -> None:
        """print_settings_json should return valid JSON."""
        parsed = json.loads(print_settings_json(Settings()))

        assert "kernel_config" in parsed
        assert "xnu_repository" in parsed
        assert "kdk_manifest_url" in parsed
