"""
Image probe.

Reads the partition table and the filesystem superblock of the image
without changing anything.
"""

from __future__ import annotations

from imageshrink.core.context import RunContext
from imageshrink.core.errors import FilesystemInfoError, PartitionProbeError
from imageshrink.core.logging import get_logger, info, log_variables
from imageshrink.core.models import (
    FilesystemInfo,
    PartedEntry,
    PartitionDescriptor,
    PartitionType,
    ProbeResult,
)
from imageshrink.platform.parsers import (
    parse_parted_machine,
    parse_parted_partition_types,
    parse_tune2fs,
)
from imageshrink.platform.runner import ToolRunner

logger = get_logger(__name__)


def select_partition(entries: list[PartedEntry]) -> PartedEntry:
    """Pick the partition to shrink: the one that starts last in the image.

    Only the trailing partition can give space back by truncating the file.
    """
    partitions = [e for e in entries if not e.is_free]
    if not partitions:
        raise ValueError("No partitions to choose from")
    return max(partitions, key=lambda e: e.start)


class ImageProbe:
    """Inspects an image and binds its target partition to a loop device."""

    def __init__(self, context: RunContext) -> None:
        self.context = context
        self.runner = context.runner

    def read_partition_table(self) -> list[PartedEntry]:
        image = str(self.context.image)
        result = self.runner.run_command([ToolRunner.PARTED, "-ms", image, "unit", "B", "print"])
        if not result.success:
            info(f"Possibly invalid image. Run 'parted {image} unit B print' manually to investigate")
            raise PartitionProbeError(
                f"parted failed with rc {result.returncode}", returncode=result.returncode
            )

        try:
            return parse_parted_machine(result.stdout)
        except ValueError as e:
            raise PartitionProbeError(f"parted output could not be read: {e}") from e

    def read_partition_type(self, start: int) -> PartitionType:
        result = self.runner.run_command(
            [ToolRunner.PARTED, "-s", str(self.context.image), "unit", "B", "print"]
        )
        if not result.success:
            raise PartitionProbeError(
                f"parted failed with rc {result.returncode}", returncode=result.returncode
            )
        return parse_parted_partition_types(result.stdout).get(start, PartitionType.PRIMARY)

    def read_filesystem(self, device: str) -> FilesystemInfo:
        result = self.runner.run_command([ToolRunner.TUNE2FS, "-l", device])
        if not result.success:
            logger.error("tune2fs output", stdout=result.stdout, stderr=result.stderr)
            raise FilesystemInfoError(
                f"tune2fs failed with rc {result.returncode}. Unable to shrink this type of image",
                returncode=result.returncode,
            )
        try:
            return parse_tune2fs(result.stdout)
        except ValueError as e:
            raise FilesystemInfoError(
                f"tune2fs output could not be read ({e}). Unable to shrink this type of image"
            ) from e

    def probe(self) -> ProbeResult:
        """Probe the image and attach the loopback at the chosen partition."""
        info("Gathering data")
        entries = self.read_partition_table()
        chosen = select_partition(entries)
        candidates = [e for e in entries if not e.is_free]
        if len(candidates) > 1:
            logger.info(
                "Selected trailing partition",
                number=chosen.number,
                start=chosen.start,
                candidates=[e.number for e in candidates],
            )

        partition = PartitionDescriptor(
            number=chosen.number,
            start=chosen.start,
            end=chosen.end,
            partition_type=self.read_partition_type(chosen.start),
            filesystem=chosen.filesystem,
        )

        device = self.context.attach_loopback(partition.start)
        filesystem = self.read_filesystem(device)

        log_variables(
            logger,
            "probe",
            partnum=partition.number,
            partstart=partition.start,
            parttype=partition.partition_type.value,
            partsize=partition.size_bytes,
            loopback=device,
            currentsize=filesystem.block_count,
            blocksize=filesystem.block_size,
            fssize=filesystem.size_bytes,
        )
        return ProbeResult(
            partition=partition, filesystem=filesystem, device=device, candidates=candidates
        )
