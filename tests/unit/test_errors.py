"""
Tests for imageshrink.core.errors module.
"""

import pytest

from imageshrink.core.errors import (
    CompressionError,
    CopyError,
    ExitCode,
    FilesystemCheckError,
    FilesystemInfoError,
    FilesystemShrinkError,
    MinimumSizeError,
    MissingToolError,
    NotAFileError,
    ParallelCompressionError,
    PartitionCreateError,
    PartitionDeleteError,
    PartitionEndError,
    PartitionProbeError,
    PrivilegeError,
    ShrinkError,
    TruncateError,
    UnsupportedCompressionError,
    UsageError,
)


@pytest.mark.parametrize(
    "error_class,code",
    [
        (UsageError, 1),
        (NotAFileError, 2),
        (PrivilegeError, 3),
        (MissingToolError, 4),
        (CopyError, 5),
        (PartitionProbeError, 6),
        (FilesystemInfoError, 7),
        (FilesystemCheckError, 9),
        (MinimumSizeError, 10),
        (FilesystemShrinkError, 12),
        (PartitionDeleteError, 13),
        (PartitionCreateError, 14),
        (PartitionEndError, 15),
        (TruncateError, 16),
        (UnsupportedCompressionError, 17),
        (ParallelCompressionError, 18),
        (CompressionError, 19),
    ],
)
def test_exit_codes(error_class: type[ShrinkError], code: int) -> None:
    assert error_class.exit_code == code
    assert issubclass(error_class, ShrinkError)


def test_exit_codes_distinct() -> None:
    codes = [c.value for c in ExitCode]
    assert len(codes) == len(set(codes))
    assert ExitCode.INTERRUPTED == 130


def test_message_and_returncode() -> None:
    err = FilesystemShrinkError("resize2fs failed", returncode=1)
    assert str(err) == "resize2fs failed"
    assert err.returncode == 1


def test_provenance_unraised() -> None:
    assert UsageError("x").provenance == "unknown"


def _raise_truncate() -> None:
    raise TruncateError("no space")


def test_provenance_names_raising_file() -> None:
    with pytest.raises(TruncateError) as exc:
        _raise_truncate()
    file_name, line = exc.value.provenance.split(":")
    assert file_name == "test_errors.py"
    assert int(line) > 0
