"""Error taxonomy for xnu_builder.

Every failure that aborts a top-level action derives from BuilderError and
carries a stable ``code`` for structured handling. Boot argument checks are
reported as warnings (see install.bootargs) and never raise.
"""

from __future__ import annotations

from pathlib import Path


class BuilderError(Exception):
    """Base exception for all fatal builder errors."""

    def __init__(self, message: str, code: str = "builder_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationError(BuilderError):
    """Invalid architecture/machine/variant combination or target version."""

    def __init__(
        self,
        message: str,
        code: str = "configuration_error",
        valid_machines: list[str] | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.valid_machines = valid_machines or []


class UnsupportedVersionError(ConfigurationError):
    """Target macOS version has no associated manifest or debug kit."""

    def __init__(self, version: str, supported: list[str] | None = None) -> None:
        message = f"macOS {version} does not have an associated Kernel Debug Kit to use"
        if supported:
            message += f". Supported versions: {', '.join(supported)}"
        super().__init__(message, code="unsupported_version")
        self.version = version
        self.supported = supported or []


class ResolutionError(BuilderError):
    """Manifest fetch failed or an expected entry was missing."""

    def __init__(self, message: str, code: str = "resolution_error") -> None:
        super().__init__(message, code=code)


class ExternalToolFailure(BuilderError):
    """A delegated external command failed or could not be started."""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        exit_code: int | None = None,
        log_path: Path | None = None,
        code: str = "external_tool_failure",
    ) -> None:
        super().__init__(message, code=code)
        self.command = command
        self.exit_code = exit_code
        self.log_path = log_path


class DiscoveryError(BuilderError):
    """Boot volume or build artifact lookup found nothing usable."""

    def __init__(self, message: str, code: str = "discovery_error") -> None:
        super().__init__(message, code=code)


class PipelineError(BuilderError):
    """A pipeline stage failed; remaining stages were not run."""

    def __init__(self, stage: str, cause: BuilderError) -> None:
        super().__init__(f"Stage '{stage}' failed: {cause.message}", code=cause.code)
        self.stage = stage
        self.cause = cause


__all__ = [
    "BuilderError",
    "ConfigurationError",
    "DiscoveryError",
    "ExternalToolFailure",
    "PipelineError",
    "ResolutionError",
    "UnsupportedVersionError",
]
