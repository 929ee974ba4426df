"""
imageshrink shrink stages.

Probe, consistency check, planning, execution, auto-expand injection and
compression, plus the pipeline that runs them in order.
"""

from imageshrink.shrink.autoexpand import AutoExpander
from imageshrink.shrink.compress import Compressor
from imageshrink.shrink.executor import ShrinkExecutor
from imageshrink.shrink.fsck import FilesystemChecker
from imageshrink.shrink.pipeline import ImageShrinker
from imageshrink.shrink.planner import ShrinkPlanner, compute_target_blocks
from imageshrink.shrink.probe import ImageProbe

__all__ = [
    "AutoExpander",
    "Compressor",
    "ShrinkExecutor",
    "FilesystemChecker",
    "ImageShrinker",
    "ShrinkPlanner",
    "compute_target_blocks",
    "ImageProbe",
]
