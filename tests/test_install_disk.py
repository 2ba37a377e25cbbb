"""Tests for boot volume discovery."""

import plistlib

import pytest
from conftest import FakeDiskQuery, RecordingRunner

from xnu_builder.errors import DiscoveryError, ExternalToolFailure
from xnu_builder.install.disk import (
    BootVolumeHandle,
    DiskutilQuery,
    PartitionEntry,
    discover_partition,
    parse_partition_list,
    parse_volume_info,
    select_partition,
)

VOLUME_INFO = plistlib.dumps(
    {
        "DeviceIdentifier": "disk3s1s1",
        "ParentWholeDisk": "disk3",
        "VolumeName": "Macintosh HD",
        "MountPoint": "/",
        "FilesystemType": "apfs",
    }
).decode()

PARTITION_LIST = plistlib.dumps(
    {
        "AllDisksAndPartitions": [
            {
                "DeviceIdentifier": "disk0",
                "Partitions": [
                    {"DeviceIdentifier": "disk0s1", "Content": "EFI"},
                    {"DeviceIdentifier": "disk0s2", "Content": "Apple_APFS"},
                ],
            },
            {
                "DeviceIdentifier": "disk3",
                "APFSVolumes": [
                    {"DeviceIdentifier": "disk3s1", "VolumeName": "Macintosh HD"},
                    {"DeviceIdentifier": "disk3s2", "VolumeName": "Preboot"},
                    {"DeviceIdentifier": "disk3s5", "VolumeName": "Macintosh HD - Data"},
                ],
            },
        ]
    }
).decode()


class TestParseVolumeInfo:
    def test_parses_boot_volume(self):
        volume = parse_volume_info(VOLUME_INFO)

        assert volume == BootVolumeHandle(
            device_identifier="disk3s1s1",
            parent_whole_disk="disk3",
            volume_name="Macintosh HD",
            mount_point="/",
        )

    def test_missing_key(self):
        output = plistlib.dumps({"DeviceIdentifier": "disk3s1"}).decode()

        with pytest.raises(DiscoveryError) as exc_info:
            parse_volume_info(output)
        assert exc_info.value.code == "invalid_disk_info"

    def test_not_a_plist(self):
        with pytest.raises(DiscoveryError) as exc_info:
            parse_volume_info("Could not find disk: /")
        assert exc_info.value.code == "invalid_disk_info"


class TestParsePartitionList:
    def test_only_requested_disk(self):
        partitions = parse_partition_list(PARTITION_LIST, "disk3")

        assert [p.identifier for p in partitions] == ["disk3s1", "disk3s2", "disk3s5"]
        assert partitions[0].label == "Macintosh HD"

    def test_falls_back_to_content(self):
        partitions = parse_partition_list(PARTITION_LIST, "disk0")

        assert partitions == [
            PartitionEntry("disk0s1", "EFI"),
            PartitionEntry("disk0s2", "Apple_APFS"),
        ]

    def test_unknown_disk(self):
        assert parse_partition_list(PARTITION_LIST, "disk9") == []


class TestSelectPartition:
    def test_exact_label_match(self, boot_volume, fake_disk):
        """'Macintosh HD - Data' must not be mistaken for the boot volume."""
        assert select_partition(boot_volume, fake_disk.partitions).identifier == "disk3s1"

    def test_no_match(self, boot_volume):
        with pytest.raises(DiscoveryError) as exc_info:
            select_partition(boot_volume, [PartitionEntry("disk3s2", "Preboot")])
        assert exc_info.value.code == "partition_not_found"

    def test_ambiguous(self, boot_volume):
        partitions = [
            PartitionEntry("disk3s1", "Macintosh HD"),
            PartitionEntry("disk3s7", "Macintosh HD"),
        ]

        with pytest.raises(DiscoveryError) as exc_info:
            select_partition(boot_volume, partitions)
        assert exc_info.value.code == "partition_ambiguous"
        assert "disk3s7" in exc_info.value.message


class TestDiskutilQuery:
    def test_queries_diskutil(self):
        runner = RecordingRunner()
        runner.respond("diskutil", "info", stdout=VOLUME_INFO)
        runner.respond("diskutil", "list", stdout=PARTITION_LIST)

        volume, partition = discover_partition(DiskutilQuery(runner))

        assert volume.volume_name == "Macintosh HD"
        assert partition.identifier == "disk3s1"
        assert runner.calls == [
            ["diskutil", "info", "-plist", "/"],
            ["diskutil", "list", "-plist", "disk3"],
        ]


class TestDiscoverPartition:
    def test_tool_failure_becomes_discovery_error(self, boot_volume):
        disk = FakeDiskQuery(
            boot_volume, [], error=ExternalToolFailure("diskutil failed", exit_code=1)
        )

        with pytest.raises(DiscoveryError) as exc_info:
            discover_partition(disk)
        assert exc_info.value.code == "disk_query_failed"

    def test_lists_parent_disk(self, fake_disk):
        volume, partition = discover_partition(fake_disk)

        assert fake_disk.queried_disks == ["disk3"]
        assert partition.label == volume.volume_name
