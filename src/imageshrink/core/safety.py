"""
imageshrink preflight checks.

Precondition checks that must all pass before the image is touched.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from imageshrink.core.errors import (
    MissingToolError,
    NotAFileError,
    PrivilegeError,
    ShrinkError,
    UnsupportedCompressionError,
)
from imageshrink.core.logging import get_logger
from imageshrink.core.models import CompressionTool
from imageshrink.platform.runner import ToolRunner

logger = get_logger(__name__)


@dataclass
class PreflightCheck:
    """Result of a single preflight check."""

    name: str
    passed: bool
    message: str
    error: type[ShrinkError] | None = None


@dataclass
class PreflightReport:
    """Complete preflight check report."""

    checks: list[PreflightCheck] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return not self.failures

    @property
    def failures(self) -> list[PreflightCheck]:
        return [c for c in self.checks if not c.passed]

    def raise_for_failure(self) -> None:
        """Raise the error of the first failed check, in check order."""
        if self.all_passed:
            return
        check = self.failures[0]
        error = check.error or ShrinkError
        raise error(check.message)


class PreflightChecker:
    """Performs preflight checks before a run.

    Checks run in registration order and stop at the first failure, so a
    missing image is reported before a missing tool.
    """

    def __init__(self) -> None:
        self._checks: list[tuple[str, Callable[[dict[str, Any]], PreflightCheck]]] = []

    def add_check(self, name: str, check_func: Callable[[dict[str, Any]], PreflightCheck]) -> None:
        """Add a preflight check function."""
        self._checks.append((name, check_func))

    def run_checks(self, context: dict[str, Any]) -> PreflightReport:
        """Run preflight checks and return report."""
        report = PreflightReport()

        for name, check_func in self._checks:
            result = check_func(context)
            report.checks.append(result)
            logger.debug("Preflight check", check=name, passed=result.passed, message=result.message)
            if not result.passed:
                break

        return report


def check_image_is_file(context: dict[str, Any]) -> PreflightCheck:
    """Check that the image argument names a regular file."""
    image: Path = context["image"]
    if not image.is_file():
        return PreflightCheck(
            name="Image File",
            passed=False,
            message=f"{image} is not a file...",
            error=NotAFileError,
        )
    return PreflightCheck(name="Image File", passed=True, message=f"{image} is a file")


def check_root(context: dict[str, Any]) -> PreflightCheck:
    """Check that the process runs as root."""
    is_admin: Callable[[], bool] = context["is_admin"]
    if not is_admin():
        return PreflightCheck(
            name="Privileges",
            passed=False,
            message="You need to be running as root.",
            error=PrivilegeError,
        )
    return PreflightCheck(name="Privileges", passed=True, message="Running as root")


def check_compression_tool(context: dict[str, Any]) -> PreflightCheck:
    """Check that the requested compression tool is one we support."""
    tool_name: str | None = context.get("compression_tool")
    if tool_name is None:
        return PreflightCheck(name="Compression", passed=True, message="No compression requested")

    if CompressionTool.from_string(tool_name) is None:
        return PreflightCheck(
            name="Compression",
            passed=False,
            message=f"{tool_name} is an unsupported ziptool.",
            error=UnsupportedCompressionError,
        )
    return PreflightCheck(name="Compression", passed=True, message=f"Compressing with {tool_name}")


def check_required_tools(context: dict[str, Any]) -> PreflightCheck:
    """Check that every required external tool is installed."""
    runner: ToolRunner = context["runner"]
    tools = required_tools(context.get("compression_tool"), context.get("parallel", False))
    missing = runner.missing_tools(tools)
    if missing:
        return PreflightCheck(
            name="Required Tools",
            passed=False,
            message=f"{missing[0]} is not installed.",
            error=MissingToolError,
        )
    return PreflightCheck(
        name="Required Tools",
        passed=True,
        message="All required tools found",
    )


def required_tools(compression_tool: str | None, parallel: bool) -> list[str]:
    """The external tools a run needs, including the compressor if any."""
    tools = list(ToolRunner.REQUIRED_TOOLS)
    tool = CompressionTool.from_string(compression_tool) if compression_tool else None
    if tool is not None:
        tools.append(tool.parallel_tool if parallel else tool.value)
    return tools


def create_standard_preflight_checker() -> PreflightChecker:
    """Create a preflight checker with the standard checks."""
    checker = PreflightChecker()
    checker.add_check("Image File", check_image_is_file)
    checker.add_check("Privileges", check_root)
    checker.add_check("Compression", check_compression_tool)
    checker.add_check("Required Tools", check_required_tools)
    return checker
