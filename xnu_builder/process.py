"""External command execution.

Every external tool (xcodebuild, make, git, kmutil, diskutil, bless, ...)
is invoked through CommandRunner so that:
- output can be captured to per-stage log files
- non-zero exits surface as ExternalToolFailure
- tests can substitute a recording runner
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from xnu_builder.errors import ExternalToolFailure

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of an external command.

    Attributes:
        command: The command line that was executed.
        exit_code: Process exit code.
        stdout: Captured output (empty unless capture was requested).
        log_path: Log file the output was written to, if any.
    """

    command: str
    exit_code: int
    stdout: str = ""
    log_path: Path | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """Runs external commands synchronously.

    Args:
        timeout: Default timeout in seconds for each command (None = unbounded).
    """

    def __init__(self, timeout: int | None = None) -> None:
        self.timeout = timeout

    def run(
        self,
        cmd: list[str],
        *,
        cwd: Path | None = None,
        log_path: Path | None = None,
        capture: bool = False,
        check: bool = True,
    ) -> CommandResult:
        """Execute a command and wait for it to finish.

        Args:
            cmd: Command as list of strings.
            cwd: Working directory.
            log_path: Append stdout/stderr to this file instead of the terminal.
            capture: Capture stdout as text and return it.
            check: Raise ExternalToolFailure on a non-zero exit.

        Returns:
            CommandResult with exit code and captured output.

        Raises:
            ExternalToolFailure: Command failed, timed out or could not start.
        """
        cmd_str = shlex.join(cmd)
        logger.debug("Executing: %s (cwd=%s)", cmd_str, cwd)

        try:
            if log_path is not None:
                exit_code = self._run_logged(
                    cmd, cmd_str, cwd, log_path, self.timeout
                )
                stdout = ""
            else:
                result = subprocess.run(
                    cmd,
                    cwd=cwd,
                    capture_output=capture,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
                exit_code = result.returncode
                stdout = result.stdout if capture else ""

        except subprocess.TimeoutExpired as e:
            message = f"{cmd[0]} timed out after {self.timeout} seconds"
            logger.error(message)
            raise ExternalToolFailure(
                message,
                command=cmd_str,
                exit_code=-1,
                log_path=log_path,
                code="timeout",
            ) from e
        except OSError as e:
            message = f"Failed to execute {cmd[0]}: {e}"
            logger.error(message)
            raise ExternalToolFailure(
                message,
                command=cmd_str,
                log_path=log_path,
                code="execution_error",
            ) from e

        if exit_code != 0 and check:
            message = f"{cmd[0]} failed with exit code {exit_code}"
            if log_path is not None:
                logger.error("%s. See log: %s", message, log_path)
            else:
                logger.error("%s: %s", message, cmd_str)
            raise ExternalToolFailure(
                message,
                command=cmd_str,
                exit_code=exit_code,
                log_path=log_path,
            )

        return CommandResult(
            command=cmd_str,
            exit_code=exit_code,
            stdout=stdout,
            log_path=log_path,
        )

    @staticmethod
    def _run_logged(
        cmd: list[str],
        cmd_str: str,
        cwd: Path | None,
        log_path: Path,
        timeout: int | None,
    ) -> int:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        started_at = datetime.now(timezone.utc)

        with log_path.open("a") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write(f"# CWD: {cwd}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            try:
                result = subprocess.run(
                    cmd,
                    cwd=cwd,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    timeout=timeout,
                    check=False,
                )
            except subprocess.TimeoutExpired:
                log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")
                raise

            finished_at = datetime.now(timezone.utc)
            duration = (finished_at - started_at).total_seconds()
            log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
            log_file.write(f"# Exit code: {result.returncode}\n")
            log_file.write(f"# Duration: {duration:.1f}s\n\n")

        return result.returncode


__all__ = ["CommandResult", "CommandRunner"]
