"""
imageshrink - Shrink disk images to the size of their data.

Shrinks the trailing ext2/3/4 partition of a disk image to its minimum size,
truncates the image file, and optionally installs a first-boot hook that
grows the partition back to fill whatever device the image is written to.
"""

__version__ = "1.0.0"
__author__ = "imageshrink developers"

from imageshrink.core.config import ImageShrinkConfig
from imageshrink.shrink.pipeline import ImageShrinker

__all__ = ["ImageShrinkConfig", "ImageShrinker", "__version__"]
