"""Boot volume install module.

This module handles:
- Boot volume and partition discovery
- Kernel collection builds with kmutil
- Copying the kernel onto a read-write mount of the boot volume
- Boot snapshot regeneration and boot-args verification

All operations follow the install order of InstallStateMachine:
- The boot volume is discovered afresh on every run
- Failures abort without unmounting, leaving the volume for inspection
- Boot-args findings are warnings only
"""

from xnu_builder.install.bootargs import VerificationWarning, check_boot_args
from xnu_builder.install.disk import (
    BootVolumeHandle,
    DiskQuery,
    DiskutilQuery,
    PartitionEntry,
    select_partition,
)
from xnu_builder.install.machine import InstallReport, InstallStateMachine

__all__ = [
    # Disk
    "BootVolumeHandle",
    "DiskQuery",
    "DiskutilQuery",
    "PartitionEntry",
    "select_partition",
    # Boot args
    "VerificationWarning",
    "check_boot_args",
    # State machine
    "InstallReport",
    "InstallStateMachine",
]
