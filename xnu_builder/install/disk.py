"""Boot volume discovery.

This module handles:
- Querying the live boot volume and its parent whole disk
- Listing the partitions (APFS volumes) of a whole disk
- Selecting the partition that backs the boot volume

Queries go through the DiskQuery protocol so the install state machine can
be exercised without diskutil. Nothing here is cached; every install run
discovers the volume afresh.
"""

from __future__ import annotations

import logging
import plistlib
from dataclasses import dataclass
from typing import Any, Protocol
from xml.parsers.expat import ExpatError

from xnu_builder.errors import DiscoveryError, ExternalToolFailure
from xnu_builder.process import CommandRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BootVolumeHandle:
    """The live boot volume.

    Attributes:
        device_identifier: Device of the volume (e.g. 'disk3s1').
        parent_whole_disk: Whole disk holding the volume (e.g. 'disk3').
        volume_name: Volume label (e.g. 'Macintosh HD').
        mount_point: Where the volume is currently mounted, if reported.
    """

    device_identifier: str
    parent_whole_disk: str
    volume_name: str
    mount_point: str | None = None


@dataclass(frozen=True)
class PartitionEntry:
    """One partition of a whole disk."""

    identifier: str
    label: str


class DiskQuery(Protocol):
    """Read-only disk queries used by the installer."""

    def boot_volume(self) -> BootVolumeHandle: ...

    def list_partitions(self, whole_disk: str) -> list[PartitionEntry]: ...


def _parse_plist(output: str, command: str) -> dict[str, Any]:
    try:
        data = plistlib.loads(output.encode())
    except (plistlib.InvalidFileException, ExpatError) as e:
        raise DiscoveryError(
            f"Could not parse output of {command}: {e}",
            code="invalid_disk_info",
        ) from e
    if not isinstance(data, dict):
        raise DiscoveryError(
            f"Unexpected output of {command}",
            code="invalid_disk_info",
        )
    return data


def parse_volume_info(output: str) -> BootVolumeHandle:
    """Parse `diskutil info -plist` output of a volume.

    Raises:
        DiscoveryError: If required keys are missing.
    """
    info = _parse_plist(output, "diskutil info")
    try:
        return BootVolumeHandle(
            device_identifier=str(info["DeviceIdentifier"]),
            parent_whole_disk=str(info["ParentWholeDisk"]),
            volume_name=str(info["VolumeName"]),
            mount_point=info.get("MountPoint") or None,
        )
    except KeyError as e:
        raise DiscoveryError(
            f"diskutil info did not report {e.args[0]}",
            code="invalid_disk_info",
        ) from e


def parse_partition_list(output: str, whole_disk: str) -> list[PartitionEntry]:
    """Parse `diskutil list -plist` output into the partitions of one disk.

    Both regular partitions and APFS volumes are returned. The label is the
    volume name, falling back to the partition content type.
    """
    listing = _parse_plist(output, "diskutil list")
    partitions: list[PartitionEntry] = []

    for disk in listing.get("AllDisksAndPartitions", []):
        if disk.get("DeviceIdentifier") != whole_disk:
            continue
        for entry in [*disk.get("Partitions", []), *disk.get("APFSVolumes", [])]:
            identifier = entry.get("DeviceIdentifier")
            if not identifier:
                continue
            label = entry.get("VolumeName") or entry.get("Content") or ""
            partitions.append(PartitionEntry(identifier=identifier, label=label))

    return partitions


class DiskutilQuery:
    """DiskQuery backed by diskutil.

    Args:
        runner: Command runner.
    """

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def _diskutil(self, *args: str) -> str:
        result = self.runner.run(["diskutil", *args], capture=True)
        return result.stdout

    def boot_volume(self) -> BootVolumeHandle:
        volume = parse_volume_info(self._diskutil("info", "-plist", "/"))
        logger.info(
            "Boot volume: %s (%s on %s)",
            volume.volume_name,
            volume.device_identifier,
            volume.parent_whole_disk,
        )
        return volume

    def list_partitions(self, whole_disk: str) -> list[PartitionEntry]:
        return parse_partition_list(
            self._diskutil("list", "-plist", whole_disk), whole_disk
        )


def select_partition(
    volume: BootVolumeHandle, partitions: list[PartitionEntry]
) -> PartitionEntry:
    """Select the partition whose label equals the boot volume name.

    Args:
        volume: Live boot volume.
        partitions: Partitions of its parent whole disk.

    Returns:
        The single matching partition.

    Raises:
        DiscoveryError: If zero or several partitions match.
    """
    matches = [p for p in partitions if p.label == volume.volume_name]

    if not matches:
        raise DiscoveryError(
            f"No partition on {volume.parent_whole_disk} matches "
            f"boot volume '{volume.volume_name}'",
            code="partition_not_found",
        )
    if len(matches) > 1:
        identifiers = ", ".join(p.identifier for p in matches)
        raise DiscoveryError(
            f"Boot volume '{volume.volume_name}' matches several partitions: "
            f"{identifiers}",
            code="partition_ambiguous",
        )

    logger.info("Boot volume partition: %s", matches[0].identifier)
    return matches[0]


def discover_partition(disk: DiskQuery) -> tuple[BootVolumeHandle, PartitionEntry]:
    """Discover the boot volume and the partition backing it.

    Raises:
        DiscoveryError: Boot volume or partition lookup failed.
    """
    try:
        volume = disk.boot_volume()
        partitions = disk.list_partitions(volume.parent_whole_disk)
    except ExternalToolFailure as e:
        raise DiscoveryError(
            f"Could not query disks: {e.message}",
            code="disk_query_failed",
        ) from e
    return volume, select_partition(volume, partitions)


__all__ = [
    "BootVolumeHandle",
    "DiskQuery",
    "DiskutilQuery",
    "PartitionEntry",
    "discover_partition",
    "parse_partition_list",
    "parse_volume_info",
    "select_partition",
]
