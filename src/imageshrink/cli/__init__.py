"""
imageshrink CLI Module.

Provides the command-line interface for imageshrink.
"""

from imageshrink.cli.main import main, cli

__all__ = ["main", "cli"]
