"""
imageshrink data models.

Defines the data structures threaded through the shrink pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class PartitionType(Enum):
    """MBR partition role as reported by parted."""

    PRIMARY = "primary"
    LOGICAL = "logical"
    EXTENDED = "extended"

    @classmethod
    def from_string(cls, value: str) -> PartitionType:
        """Create PartitionType from parted's type column."""
        value_lower = value.lower().strip()
        for ptype in cls:
            if ptype.value == value_lower:
                return ptype
        return cls.PRIMARY


class CompressionTool(Enum):
    """Supported compression tools."""

    GZIP = "gzip"
    XZ = "xz"

    @property
    def extension(self) -> str:
        return {CompressionTool.GZIP: "gz", CompressionTool.XZ: "xz"}[self]

    @property
    def parallel_tool(self) -> str:
        return {CompressionTool.GZIP: "pigz", CompressionTool.XZ: "xz"}[self]

    @property
    def parallel_options(self) -> str:
        return {CompressionTool.GZIP: "-f9", CompressionTool.XZ: "-T0"}[self]

    @classmethod
    def from_string(cls, value: str) -> CompressionTool | None:
        value_lower = value.lower().strip()
        for tool in cls:
            if tool.value == value_lower:
                return tool
        return None


@dataclass
class PartedEntry:
    """One line of ``parted -m`` output (a partition or a free-space run)."""

    number: int
    start: int
    end: int
    size: int
    filesystem: str = ""
    is_free: bool = False


@dataclass
class PartitionDescriptor:
    """The partition selected for shrinking."""

    number: int
    start: int
    end: int
    partition_type: PartitionType = PartitionType.PRIMARY
    filesystem: str = ""

    @property
    def is_logical(self) -> bool:
        return self.partition_type == PartitionType.LOGICAL

    @property
    def size_bytes(self) -> int:
        return self.end - self.start + 1

    def end_for_size(self, size_bytes: int) -> int:
        """End offset of this partition if it were resized to ``size_bytes``."""
        return self.start + size_bytes


@dataclass
class FilesystemInfo:
    """ext2/3/4 superblock metadata from tune2fs."""

    block_count: int
    block_size: int

    @property
    def size_bytes(self) -> int:
        return self.block_count * self.block_size


@dataclass
class FilesystemSizeState:
    """Current, minimum and target filesystem sizes in blocks."""

    current_blocks: int
    minimum_blocks: int
    block_size: int
    target_blocks: int
    margin_blocks: int = 0

    @property
    def needs_shrink(self) -> bool:
        return self.current_blocks != self.minimum_blocks

    @property
    def headroom_blocks(self) -> int:
        return self.current_blocks - self.minimum_blocks

    @property
    def target_bytes(self) -> int:
        return self.target_blocks * self.block_size


@dataclass
class ProbeResult:
    """Everything learned about the image before any mutation."""

    partition: PartitionDescriptor
    filesystem: FilesystemInfo
    device: str
    candidates: list[PartedEntry] = field(default_factory=list)


@dataclass
class AutoexpandState:
    """What the auto-expand step changed, for rollback."""

    installed: bool = False
    backup_created: bool = False
    skipped_reason: str | None = None


@dataclass
class ShrinkResult:
    """Outcome of a full shrink run."""

    image_path: Path
    size_before: int
    size_after: int
    size_state: FilesystemSizeState | None = None
    partition: PartitionDescriptor | None = None
    autoexpand: AutoexpandState = field(default_factory=AutoexpandState)
    compressed: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def shrunk(self) -> bool:
        return self.size_state is not None and self.size_state.needs_shrink
