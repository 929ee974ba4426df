"""
Shrink executor.

Shrinks the filesystem, rewrites the partition entry and truncates the image
file, strictly in that order. Each step runs only if the previous one
succeeded.
"""

from __future__ import annotations

import errno
import os
import time
from pathlib import Path

import humanize

from imageshrink.core.context import RunContext
from imageshrink.core.errors import (
    FilesystemShrinkError,
    PartitionCreateError,
    PartitionDeleteError,
    PartitionEndError,
    TruncateError,
)
from imageshrink.core.logging import OperationLogger, get_logger, info, log_variables
from imageshrink.core.models import FilesystemSizeState, PartitionDescriptor
from imageshrink.platform.parsers import end_of_used_space, parse_parted_machine
from imageshrink.platform.runner import ToolRunner
from imageshrink.shrink.autoexpand import AutoExpander

logger = get_logger(__name__)

ZERO_FILE_NAME = "imageshrink_zero_file"
ZERO_CHUNK_SIZE = 4 * 1024 * 1024


def fill_with_zeros(path: Path, chunk_size: int = ZERO_CHUNK_SIZE) -> int:
    """Write zeros to ``path`` until the filesystem is full.

    Returns the number of bytes written. Running out of space is the normal
    end; any other OS error propagates.
    """
    chunk = bytes(chunk_size)
    written = 0
    with open(path, "wb", buffering=0) as handle:
        try:
            while True:
                n = handle.write(chunk)
                if not n:
                    break
                written += n
        except OSError as e:
            if e.errno != errno.ENOSPC:
                raise
        try:
            os.fsync(handle.fileno())
        except OSError as e:
            if e.errno != errno.ENOSPC:
                raise
    return written


class ShrinkExecutor:
    """Applies a shrink plan to the image."""

    def __init__(self, context: RunContext, autoexpander: AutoExpander | None = None) -> None:
        self.context = context
        self.runner = context.runner
        self.autoexpander = autoexpander or AutoExpander(context)

    def execute(self, partition: PartitionDescriptor, plan: FilesystemSizeState) -> int:
        """Run every step; returns the final image length in bytes."""
        self.shrink_filesystem(plan)
        if self.context.config.shrink.zero_free_space:
            self.zero_free_space()
        time.sleep(self.context.config.shrink.post_zero_settle_seconds)

        # The partition table is rewritten on the image file directly.
        self.context.release_loopback()

        self.resize_partition(partition, plan)
        return self.truncate_image()

    # ==================== Step 1: filesystem ====================

    def shrink_filesystem(self, plan: FilesystemSizeState) -> None:
        device = self.context.loopback
        if device is None:
            raise FilesystemShrinkError("No loopback device attached")

        info("Shrinking filesystem")
        with OperationLogger("filesystem shrink", logger, device=device, blocks=plan.target_blocks):
            result = self.runner.run_command(
                [ToolRunner.RESIZE2FS, "-p", device, str(plan.target_blocks)],
                capture_output=False,
            )
            if result.success:
                return

            if not self.autoexpander.restore():
                self.context.add_warning("Could not roll back /etc/rc.local after failed shrink")
            self.context.release_loopback()
            raise FilesystemShrinkError(
                f"resize2fs failed with rc {result.returncode}", returncode=result.returncode
            )

    # ==================== Step 2: zero free space ====================

    def zero_free_space(self) -> int:
        """Overwrite free space with zeros so the image compresses well.

        Failures are logged and skipped.
        """
        info("Zeroing any free space left")
        if not self.context.mount():
            self.context.add_warning("Unable to mount filesystem, free space was not zeroed")
            return 0

        zero_file = self.context.ensure_mount_dir() / ZERO_FILE_NAME
        written = 0
        try:
            written = fill_with_zeros(zero_file)
            info(f"Zeroed {humanize.naturalsize(written, binary=True)}")
        except OSError as e:
            self.context.add_warning(f"Zeroing free space failed: {e}")
        finally:
            try:
                zero_file.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove zero file", path=str(zero_file), error=str(e))
            self.context.unmount()
        return written

    # ==================== Step 3: partition table ====================

    def resize_partition(self, partition: PartitionDescriptor, plan: FilesystemSizeState) -> int:
        """Recreate the partition entry with the same start and a new end."""
        info("Shrinking partition")
        image = str(self.context.image)
        new_end = partition.end_for_size(plan.target_bytes)
        log_variables(logger, "partition", partnewsize=plan.target_bytes, newpartend=new_end)

        result = self.runner.run_command(
            [ToolRunner.PARTED, "-s", "-a", "minimal", image, "rm", str(partition.number)]
        )
        if not result.success:
            raise PartitionDeleteError(
                f"parted failed with rc {result.returncode}", returncode=result.returncode
            )

        result = self.runner.run_command(
            [
                ToolRunner.PARTED,
                "-s",
                image,
                "unit",
                "B",
                "mkpart",
                partition.partition_type.value,
                str(partition.start),
                str(new_end),
            ]
        )
        if not result.success:
            raise PartitionCreateError(
                f"parted failed with rc {result.returncode}", returncode=result.returncode
            )

        partition.end = new_end
        return new_end

    # ==================== Step 4: truncate ====================

    def truncate_image(self) -> int:
        """Cut the image file off right after the last partition."""
        info("Truncating image")
        image = self.context.image

        result = self.runner.run_command(
            [ToolRunner.PARTED, "-ms", str(image), "unit", "B", "print", "free"]
        )
        if not result.success:
            raise PartitionEndError(
                f"parted failed with rc {result.returncode}", returncode=result.returncode
            )
        try:
            end = end_of_used_space(parse_parted_machine(result.stdout))
        except ValueError as e:
            raise PartitionEndError(f"parted output could not be read: {e}") from e

        log_variables(logger, "truncate", endresult=end)
        try:
            os.truncate(image, end)
        except OSError as e:
            raise TruncateError(f"truncate failed: {e}") from e
        return end
