"""
Tests for imageshrink.core.safety module.
"""

from pathlib import Path

import pytest

from conftest import FakeRunner
from imageshrink.core.errors import (
    MissingToolError,
    NotAFileError,
    PrivilegeError,
    UnsupportedCompressionError,
)
from imageshrink.core.safety import (
    PreflightCheck,
    PreflightReport,
    check_compression_tool,
    check_image_is_file,
    check_required_tools,
    check_root,
    create_standard_preflight_checker,
    required_tools,
)


def make_context(image: Path, **overrides):
    context = {
        "image": image,
        "is_admin": lambda: True,
        "runner": FakeRunner(),
        "compression_tool": None,
        "parallel": False,
    }
    context.update(overrides)
    return context


class TestPreflightReport:
    """Tests for PreflightReport."""

    def test_all_passed(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="Check 1", passed=True, message="OK"),
                PreflightCheck(name="Check 2", passed=True, message="OK"),
            ]
        )
        assert report.all_passed is True
        report.raise_for_failure()

    def test_raise_first_failure(self) -> None:
        report = PreflightReport(
            checks=[
                PreflightCheck(name="a", passed=True, message="OK"),
                PreflightCheck(name="b", passed=False, message="root", error=PrivilegeError),
                PreflightCheck(name="c", passed=False, message="tool", error=MissingToolError),
            ]
        )
        with pytest.raises(PrivilegeError, match="root"):
            report.raise_for_failure()


class TestChecks:
    """Tests for individual preflight checks."""

    def test_image_is_file(self, image_file: Path) -> None:
        assert check_image_is_file(make_context(image_file)).passed is True

    def test_image_missing(self, temp_dir: Path) -> None:
        result = check_image_is_file(make_context(temp_dir / "missing.img"))
        assert result.passed is False
        assert result.error is NotAFileError

    def test_image_is_directory(self, temp_dir: Path) -> None:
        assert check_image_is_file(make_context(temp_dir)).passed is False

    def test_not_root(self, image_file: Path) -> None:
        result = check_root(make_context(image_file, is_admin=lambda: False))
        assert result.passed is False
        assert result.error is PrivilegeError

    def test_unsupported_compression(self, image_file: Path) -> None:
        result = check_compression_tool(make_context(image_file, compression_tool="lzma"))
        assert result.passed is False
        assert result.error is UnsupportedCompressionError

    def test_missing_tool(self, image_file: Path) -> None:
        runner = FakeRunner(missing=("resize2fs",))
        result = check_required_tools(make_context(image_file, runner=runner))
        assert result.passed is False
        assert result.error is MissingToolError
        assert "resize2fs" in result.message

    def test_missing_parallel_compressor(self, image_file: Path) -> None:
        runner = FakeRunner(missing=("pigz",))
        context = make_context(image_file, runner=runner, compression_tool="gzip", parallel=True)
        assert check_required_tools(context).passed is False

        context = make_context(image_file, runner=runner, compression_tool="gzip", parallel=False)
        assert check_required_tools(context).passed is True


class TestRequiredTools:
    """Tests for required_tools."""

    def test_base_tools(self) -> None:
        assert required_tools(None, False) == [
            "parted",
            "losetup",
            "tune2fs",
            "md5sum",
            "e2fsck",
            "resize2fs",
        ]

    def test_compression_tools(self) -> None:
        assert required_tools("gzip", True)[-1] == "pigz"
        assert required_tools("gzip", False)[-1] == "gzip"
        assert required_tools("xz", True)[-1] == "xz"


class TestStandardChecker:
    """Tests for the standard preflight checker."""

    def test_order_stops_at_first_failure(self, temp_dir: Path) -> None:
        checker = create_standard_preflight_checker()
        report = checker.run_checks(make_context(temp_dir / "missing.img", is_admin=lambda: False))

        assert len(report.checks) == 1
        with pytest.raises(NotAFileError):
            report.raise_for_failure()

    def test_all_pass(self, image_file: Path) -> None:
        report = create_standard_preflight_checker().run_checks(make_context(image_file))
        assert report.all_passed is True
        assert len(report.checks) == 4
