"""
imageshrink error taxonomy.

Every failure class maps to a distinct process exit status so calling
automation can tell causes apart without parsing text.
"""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path


class ExitCode(IntEnum):
    """Process exit statuses."""

    OK = 0
    USAGE = 1
    NOT_A_FILE = 2
    NOT_ROOT = 3
    MISSING_TOOL = 4
    COPY_FAILED = 5
    PARTITION_PROBE_FAILED = 6
    FILESYSTEM_INFO_FAILED = 7
    FILESYSTEM_CHECK_FAILED = 9
    MINIMUM_SIZE_FAILED = 10
    FILESYSTEM_SHRINK_FAILED = 12
    PARTITION_DELETE_FAILED = 13
    PARTITION_CREATE_FAILED = 14
    PARTITION_END_FAILED = 15
    TRUNCATE_FAILED = 16
    UNSUPPORTED_COMPRESSION = 17
    PARALLEL_COMPRESSION_FAILED = 18
    COMPRESSION_FAILED = 19
    INTERRUPTED = 130


class ShrinkError(Exception):
    """Base class for all errors that abort a shrink run."""

    exit_code: ExitCode = ExitCode.USAGE

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.returncode = returncode

    @property
    def provenance(self) -> str:
        """Source location that raised the error, as ``module.py:line``."""
        tb = self.__traceback__
        if tb is None:
            return "unknown"
        while tb.tb_next is not None:
            tb = tb.tb_next
        return f"{Path(tb.tb_frame.f_code.co_filename).name}:{tb.tb_lineno}"

    def __str__(self) -> str:
        return self.message


class UsageError(ShrinkError):
    exit_code = ExitCode.USAGE


class NotAFileError(ShrinkError):
    exit_code = ExitCode.NOT_A_FILE


class PrivilegeError(ShrinkError):
    exit_code = ExitCode.NOT_ROOT


class MissingToolError(ShrinkError):
    exit_code = ExitCode.MISSING_TOOL


class UnsupportedCompressionError(ShrinkError):
    exit_code = ExitCode.UNSUPPORTED_COMPRESSION


class CopyError(ShrinkError):
    exit_code = ExitCode.COPY_FAILED


class PartitionProbeError(ShrinkError):
    exit_code = ExitCode.PARTITION_PROBE_FAILED


class FilesystemInfoError(ShrinkError):
    exit_code = ExitCode.FILESYSTEM_INFO_FAILED


class FilesystemCheckError(ShrinkError):
    exit_code = ExitCode.FILESYSTEM_CHECK_FAILED


class MinimumSizeError(ShrinkError):
    exit_code = ExitCode.MINIMUM_SIZE_FAILED


class FilesystemShrinkError(ShrinkError):
    exit_code = ExitCode.FILESYSTEM_SHRINK_FAILED


class PartitionDeleteError(ShrinkError):
    exit_code = ExitCode.PARTITION_DELETE_FAILED


class PartitionCreateError(ShrinkError):
    exit_code = ExitCode.PARTITION_CREATE_FAILED


class PartitionEndError(ShrinkError):
    exit_code = ExitCode.PARTITION_END_FAILED


class TruncateError(ShrinkError):
    exit_code = ExitCode.TRUNCATE_FAILED


class ParallelCompressionError(ShrinkError):
    exit_code = ExitCode.PARALLEL_COMPRESSION_FAILED


class CompressionError(ShrinkError):
    exit_code = ExitCode.COMPRESSION_FAILED
