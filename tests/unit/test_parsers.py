"""
Tests for imageshrink.platform.parsers module.
"""

import pytest

from conftest import (
    PARTED_FREE_AFTER,
    PARTED_HUMAN,
    PARTED_HUMAN_LOGICAL,
    PARTED_MACHINE,
    RESIZE2FS_MINIMUM,
    TUNE2FS,
)
from imageshrink.core.models import PartitionType
from imageshrink.platform.parsers import (
    end_of_used_space,
    parse_bytes,
    parse_parted_machine,
    parse_parted_partition_types,
    parse_resize2fs_minimum,
    parse_tune2fs,
)


class TestParseBytes:
    """Tests for parse_bytes."""

    def test_valid(self) -> None:
        assert parse_bytes("4194304B") == 4194304
        assert parse_bytes(" 0B ") == 0

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            parse_bytes("4MB")
        with pytest.raises(ValueError):
            parse_bytes("123")


class TestParsePartedMachine:
    """Tests for parse_parted_machine."""

    def test_partitions(self) -> None:
        entries = parse_parted_machine(PARTED_MACHINE.format(image="/tmp/x.img"))

        assert len(entries) == 2
        assert entries[0].number == 1
        assert entries[0].filesystem == "fat16"
        assert entries[1].number == 2
        assert entries[1].start == 1048576
        assert entries[1].end == 8388607
        assert entries[1].size == 7340032
        assert not any(e.is_free for e in entries)

    def test_free_space_entries(self) -> None:
        entries = parse_parted_machine(PARTED_FREE_AFTER.format(image="/tmp/x.img"))

        assert len(entries) == 3
        assert entries[-1].is_free is True
        assert entries[-1].start == 5144577
        assert entries[-1].filesystem == ""

    def test_device_line_with_colons_in_path_ignored(self) -> None:
        output = "BYT;\n/tmp/a.img:100B:file:512:512:loop:Loopback device:;\n1:0B:99B:100B:ext4::;\n"
        entries = parse_parted_machine(output)
        assert len(entries) == 1
        assert entries[0].filesystem == "ext4"

    def test_no_partitions(self) -> None:
        with pytest.raises(ValueError):
            parse_parted_machine("BYT;\n/tmp/x.img:8388608B:file:512:512:unknown::;\n")

    def test_empty(self) -> None:
        with pytest.raises(ValueError):
            parse_parted_machine("")


class TestParsePartedPartitionTypes:
    """Tests for parse_parted_partition_types."""

    def test_primary(self) -> None:
        types = parse_parted_partition_types(PARTED_HUMAN.format(image="/tmp/x.img"))
        assert types == {512: PartitionType.PRIMARY, 1048576: PartitionType.PRIMARY}

    def test_logical(self) -> None:
        types = parse_parted_partition_types(PARTED_HUMAN_LOGICAL.format(image="/tmp/x.img"))
        assert types[1048576] == PartitionType.LOGICAL
        assert types[1048064] == PartitionType.EXTENDED
        assert types[512] == PartitionType.PRIMARY

    def test_gpt_without_type_column(self) -> None:
        output = """Partition Table: gpt

Number  Start     End       Size      File system  Name  Flags
 1      1048576B  8388607B  7340032B  ext4         root
"""
        types = parse_parted_partition_types(output)
        assert types == {1048576: PartitionType.PRIMARY}


class TestParseTune2fs:
    """Tests for parse_tune2fs."""

    def test_block_fields(self) -> None:
        info = parse_tune2fs(TUNE2FS)
        assert info.block_count == 7168
        assert info.block_size == 1024
        assert info.size_bytes == 7340032

    def test_reserved_block_count_not_confused(self) -> None:
        info = parse_tune2fs("Reserved block count: 10\nBlock count: 20\nBlock size: 4096\n")
        assert info.block_count == 20

    def test_missing_fields(self) -> None:
        with pytest.raises(ValueError, match="Block size"):
            parse_tune2fs("Block count: 20\n")

    def test_malformed_value(self) -> None:
        with pytest.raises(ValueError):
            parse_tune2fs("Block count: many\nBlock size: 4096\n")


class TestParseResize2fsMinimum:
    """Tests for parse_resize2fs_minimum."""

    def test_minimum(self) -> None:
        assert parse_resize2fs_minimum(RESIZE2FS_MINIMUM) == 3000

    def test_with_version_banner(self) -> None:
        output = "resize2fs 1.47.0 (5-Feb-2023)\nEstimated minimum size of the filesystem: 421380\n"
        assert parse_resize2fs_minimum(output) == 421380

    def test_missing(self) -> None:
        with pytest.raises(ValueError):
            parse_resize2fs_minimum("resize2fs: Bad magic number in super-block\n")


class TestEndOfUsedSpace:
    """Tests for end_of_used_space."""

    def test_trailing_free_space(self) -> None:
        entries = parse_parted_machine(PARTED_FREE_AFTER.format(image="/tmp/x.img"))
        assert end_of_used_space(entries) == 5144577

    def test_no_trailing_free_space(self) -> None:
        entries = parse_parted_machine(PARTED_MACHINE.format(image="/tmp/x.img"))
        assert end_of_used_space(entries) == 8388608
