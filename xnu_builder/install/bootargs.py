"""Boot argument verification.

After install the NVRAM boot-args are checked for the flags the open
source kernel needs to boot. Findings are warnings, never errors: the
install has already happened and the operator decides what to do.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from xnu_builder.errors import ExternalToolFailure
from xnu_builder.process import CommandRunner

logger = logging.getLogger(__name__)

KCSUFFIX_FLAG = "kcsuffix=development"
SKYWALK_FLAG = "wlan.skywalk.enable=0"
DK_FLAG = "dk=0"


@dataclass(frozen=True)
class VerificationWarning:
    """A missing boot argument."""

    flag: str
    message: str


def check_boot_args(boot_args: str) -> list[VerificationWarning]:
    """Check boot-args for the flags the installed kernel needs.

    The skywalk and dk flags only matter once the development kernel
    collection is selected, so they are checked only when kcsuffix is set.

    Args:
        boot_args: Current boot-args value (may be empty).

    Returns:
        Warnings for every missing flag; empty when all are set.
    """
    flags = set(boot_args.split())

    if KCSUFFIX_FLAG not in flags:
        return [
            VerificationWarning(
                KCSUFFIX_FLAG,
                f"{KCSUFFIX_FLAG} is not set in boot-args. "
                "You may not be booting into the installed kernel.",
            )
        ]

    warnings: list[VerificationWarning] = []
    if SKYWALK_FLAG not in flags:
        warnings.append(
            VerificationWarning(
                SKYWALK_FLAG,
                f"{SKYWALK_FLAG} is not set in boot-args. You may encounter a "
                "kernel panic loop because Skywalk is not part of XNU open source.",
            )
        )
    if DK_FLAG not in flags:
        warnings.append(
            VerificationWarning(
                DK_FLAG,
                f"{DK_FLAG} is not set in boot-args. You may have issues loading kexts.",
            )
        )
    return warnings


def parse_nvram_output(output: str) -> str:
    """Extract the value from `nvram boot-args` output ('boot-args\\t<value>')."""
    _, _, value = output.strip().partition("boot-args")
    return value.strip()


def read_boot_args(runner: CommandRunner) -> str:
    """Read the current boot-args; an unset or unreadable value is empty."""
    try:
        result = runner.run(["nvram", "boot-args"], capture=True, check=False)
    except ExternalToolFailure as e:
        logger.warning("Could not read boot-args: %s", e.message)
        return ""
    if not result.success:
        logger.debug("nvram boot-args is not set (exit code %d)", result.exit_code)
        return ""
    boot_args = parse_nvram_output(result.stdout)
    logger.info("Current boot-args: %s", boot_args)
    return boot_args


__all__ = [
    "DK_FLAG",
    "KCSUFFIX_FLAG",
    "SKYWALK_FLAG",
    "VerificationWarning",
    "check_boot_args",
    "parse_nvram_output",
    "read_boot_args",
]
