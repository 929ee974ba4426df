"""
Tool output parsers.

Parsers for parted, tune2fs and resize2fs output. Each one turns text into a
typed result once so the pipeline never greps tool output itself.
"""

from __future__ import annotations

import re

from imageshrink.core.models import FilesystemInfo, PartedEntry, PartitionType

_BYTES_RE = re.compile(r"^(\d+)B$")
_PARTED_HEADERS = ("BYT;", "CHS;", "CYL;")


def parse_bytes(value: str) -> int:
    """Parse a parted byte quantity such as ``4194304B``."""
    match = _BYTES_RE.match(value.strip())
    if not match:
        raise ValueError(f"Not a byte quantity: {value!r}")
    return int(match.group(1))


def parse_parted_machine(output: str) -> list[PartedEntry]:
    """
    Parse ``parted -ms <image> unit B print [free]`` output.

    Example input:
    BYT;
    /images/raspios.img:3904897024B:file:512:512:msdos::;
    1:4194304B:272629759B:268435456B:fat32::lba;
    2:272629760B:3904897023B:3632267264B:ext4::;
    """
    entries: list[PartedEntry] = []

    for line in output.strip().split("\n"):
        line = line.strip()
        if not line or line in _PARTED_HEADERS:
            continue

        fields = line.rstrip(";").split(":")
        if len(fields) < 4 or not fields[0].isdigit():
            # Device line
            continue

        try:
            start = parse_bytes(fields[1])
            end = parse_bytes(fields[2])
            size = parse_bytes(fields[3])
        except ValueError:
            continue

        filesystem = fields[4] if len(fields) > 4 else ""
        entries.append(
            PartedEntry(
                number=int(fields[0]),
                start=start,
                end=end,
                size=size,
                filesystem="" if filesystem == "free" else filesystem,
                is_free=filesystem == "free",
            )
        )

    if not any(not e.is_free for e in entries):
        raise ValueError("No partitions found in parted output")

    return entries


def parse_parted_partition_types(output: str) -> dict[int, PartitionType]:
    """
    Parse the human-readable ``parted -s <image> unit B print`` table.

    Returns a mapping of partition start offset to partition type. GPT tables
    have no Type column; their partitions are all reported as primary.
    """
    result: dict[int, PartitionType] = {}
    known = {t.value for t in PartitionType}

    for line in output.strip().split("\n"):
        tokens = line.split()
        if len(tokens) < 4 or not tokens[0].isdigit():
            continue

        try:
            start = parse_bytes(tokens[1])
        except ValueError:
            continue

        ptype = PartitionType.PRIMARY
        if len(tokens) > 4 and tokens[4].lower() in known:
            ptype = PartitionType.from_string(tokens[4])
        result[start] = ptype

    return result


def parse_tune2fs(output: str) -> FilesystemInfo:
    """Parse ``tune2fs -l`` output into block count and block size."""
    values: dict[str, int] = {}

    for line in output.split("\n"):
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        key = key.strip()
        if key in ("Block count", "Block size"):
            try:
                values[key] = int(value.strip())
            except ValueError as e:
                raise ValueError(f"Malformed tune2fs field {key!r}: {value.strip()!r}") from e

    missing = {"Block count", "Block size"} - values.keys()
    if missing:
        raise ValueError(f"tune2fs output lacks {', '.join(sorted(missing))}")

    return FilesystemInfo(block_count=values["Block count"], block_size=values["Block size"])


def parse_resize2fs_minimum(output: str) -> int:
    """
    Parse ``resize2fs -P`` output.

    Example input:
    Estimated minimum size of the filesystem: 421380
    """
    match = re.search(r"minimum size of the filesystem:\s*(\d+)", output)
    if not match:
        raise ValueError("resize2fs did not report a minimum size")
    return int(match.group(1))


def end_of_used_space(entries: list[PartedEntry]) -> int:
    """First byte after the last partition, i.e. the length the image needs."""
    partitions = [e for e in entries if not e.is_free]
    if not partitions:
        raise ValueError("No partitions to measure")
    return max(p.end for p in partitions) + 1
