"""
imageshrink platform layer.

Runs the external filesystem, partition and compression tools and parses
their output.
"""

from __future__ import annotations

import os

from imageshrink.platform.base import CommandResult
from imageshrink.platform.runner import ToolRunner


def is_admin() -> bool:
    """Check if running with root privileges."""
    return os.geteuid() == 0


__all__ = [
    "CommandResult",
    "ToolRunner",
    "is_admin",
]
