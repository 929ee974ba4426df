"""
imageshrink core.

Configuration, logging, errors, data models, preflight checks and the run
context shared by every pipeline stage.
"""

from imageshrink.core.config import ImageShrinkConfig
from imageshrink.core.context import RunContext
from imageshrink.core.errors import ExitCode, ShrinkError
from imageshrink.core.logging import get_logger, setup_logging

__all__ = [
    "ImageShrinkConfig",
    "RunContext",
    "ExitCode",
    "ShrinkError",
    "get_logger",
    "setup_logging",
]
