"""
Post-shrink compression.

Runs gzip/pigz or xz on the finished image in place.
"""

from __future__ import annotations

import os
import re
import shlex
from collections.abc import Mapping
from pathlib import Path

from imageshrink.core.config import CompressionConfig
from imageshrink.core.errors import (
    CompressionError,
    ParallelCompressionError,
    UnsupportedCompressionError,
)
from imageshrink.core.logging import get_logger, info
from imageshrink.core.models import CompressionTool
from imageshrink.platform.runner import ToolRunner

logger = get_logger(__name__)


def override_variable(program_name: str, tool: CompressionTool) -> str:
    """Environment variable that replaces all options for ``tool``."""
    prefix = re.sub(r"[^A-Za-z0-9]", "_", program_name).upper()
    return f"{prefix}_{tool.value.upper()}"


def build_options(
    tool: CompressionTool,
    parallel: bool,
    verbose: bool,
    program_name: str,
    environ: Mapping[str, str] | None = None,
) -> list[str]:
    """Parallel defaults, then an environment override, then ``-v``."""
    environ = os.environ if environ is None else environ
    options = tool.parallel_options if parallel else ""

    variable = override_variable(program_name, tool)
    if variable in environ:
        options = environ[variable]
        logger.debug("Compression options overridden", variable=variable, options=options)

    args = shlex.split(options)
    if verbose:
        args.append("-v")
    return args


def strip_extension(path: Path, tool_name: str | None) -> Path:
    """Drop the compression extension the tool would add itself."""
    tool = CompressionTool.from_string(tool_name) if tool_name else None
    if tool is not None and path.suffix == f".{tool.extension}":
        return path.with_suffix("")
    return path


class Compressor:
    """Compresses an image with the configured tool."""

    def __init__(self, runner: ToolRunner, config: CompressionConfig, program_name: str) -> None:
        tool = CompressionTool.from_string(config.tool) if config.tool else None
        if config.tool and tool is None:
            raise UnsupportedCompressionError(f"{config.tool} is an unsupported ziptool.")
        self.runner = runner
        self.config = config
        self.program_name = program_name
        self.tool = tool

    @property
    def enabled(self) -> bool:
        return self.tool is not None

    @property
    def command_name(self) -> str:
        if self.tool is None:
            return ""
        return self.tool.parallel_tool if self.config.parallel else self.tool.value

    def compress(self, image: Path, environ: Mapping[str, str] | None = None) -> Path:
        """Compress ``image`` in place; returns the compressed file's path."""
        if self.tool is None:
            return image

        options = build_options(
            self.tool,
            self.config.parallel,
            self.config.verbose,
            self.program_name,
            environ,
        )
        command = self.command_name
        info(f"Using {command} on the shrunk image")

        result = self.runner.run_command([command, *options, str(image)], capture_output=False)
        if not result.success:
            error = ParallelCompressionError if self.config.parallel else CompressionError
            raise error(
                f"{command} failed with rc {result.returncode}", returncode=result.returncode
            )

        return image.with_name(f"{image.name}.{self.tool.extension}")
