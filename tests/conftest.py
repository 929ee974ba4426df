"""
Pytest configuration and fixtures for imageshrink tests.
"""

import sys
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from imageshrink.core.config import ImageShrinkConfig, LoggingConfig, ShrinkConfig  # noqa: E402
from imageshrink.platform.base import CommandResult  # noqa: E402
from imageshrink.platform.runner import ToolRunner  # noqa: E402

LOOP_DEVICE = "/dev/loop7"
IMAGE_SIZE = 8388608

PARTED_MACHINE = """BYT;
{image}:8388608B:file:512:512:msdos::;
1:512B:524287B:523776B:fat16::lba;
2:1048576B:8388607B:7340032B:ext4::;
"""

PARTED_HUMAN = """Model:  (file)
Disk {image}: 8388608B
Sector size (logical/physical): 512B/512B
Partition Table: msdos
Disk Flags:

Number  Start     End       Size      Type     File system  Flags
 1      512B      524287B   523776B   primary  fat16        lba
 2      1048576B  8388607B  7340032B  primary  ext4
"""

PARTED_HUMAN_LOGICAL = """Model:  (file)
Disk {image}: 8388608B
Sector size (logical/physical): 512B/512B
Partition Table: msdos
Disk Flags:

Number  Start     End       Size      Type      File system  Flags
 1      512B      524287B   523776B   primary   fat16        lba
 2      1048064B  8388607B  7340544B  extended               lba
 5      1048576B  8388607B  7340032B  logical   ext4
"""

PARTED_FREE_AFTER = """BYT;
{image}:8388608B:file:512:512:msdos::;
1:512B:524287B:523776B:fat16::lba;
2:1048576B:5144576B:4096001B:ext4::;
1:5144577B:8388607B:3244031B:free;
"""

TUNE2FS = """tune2fs 1.47.0 (5-Feb-2023)
Filesystem volume name:   rootfs
Last mounted on:          /
Filesystem magic number:  0xEF53
Filesystem state:         clean
Inode count:              1792
Block count:              7168
Reserved block count:     358
Free blocks:              3900
Block size:               1024
Fragment size:            1024
"""

RESIZE2FS_MINIMUM = "Estimated minimum size of the filesystem: 3000\n"


class FakeRunner(ToolRunner):
    """ToolRunner that answers from scripted rules instead of running tools.

    A rule matches when its prefix equals the start of the command; the
    longest matching prefix wins, the most recently added on a tie. Rules with ``times`` stop matching after
    that many uses. Unmatched commands succeed with empty output.
    """

    def __init__(self, missing: tuple[str, ...] = ()) -> None:
        super().__init__(env={"PATH": "/usr/sbin:/usr/bin"})
        self.missing = set(missing)
        self.calls: list[list[str]] = []
        self._rules: list[dict] = []

    def on(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        times: int | None = None,
    ) -> "FakeRunner":
        self._rules.append(
            {
                "prefix": list(prefix),
                "returncode": returncode,
                "stdout": stdout,
                "stderr": stderr,
                "times": times,
            }
        )
        return self

    def check_tool(self, tool: str) -> bool:
        return tool not in self.missing

    def run_command(
        self,
        command: list[str],
        check: bool = True,
        capture_output: bool = True,
    ) -> CommandResult:
        self.calls.append(list(command))
        matches = [
            rule
            for rule in self._rules
            if command[: len(rule["prefix"])] == rule["prefix"]
            and (rule["times"] is None or rule["times"] > 0)
        ]
        if not matches:
            return CommandResult(0, "", "", command)

        # Later rules override earlier ones with an equally long prefix.
        rule = max(reversed(matches), key=lambda r: len(r["prefix"]))
        if rule["times"] is not None:
            rule["times"] -= 1
        return CommandResult(rule["returncode"], rule["stdout"], rule["stderr"], command)

    def called(self, *prefix: str) -> list[list[str]]:
        """Every recorded call starting with ``prefix``."""
        return [c for c in self.calls if c[: len(prefix)] == list(prefix)]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir: Path) -> ImageShrinkConfig:
    """Configuration with no settle delays and no update check."""
    config = ImageShrinkConfig(
        logging=LoggingConfig(debug_log_file=temp_dir / "imageshrink.log"),
        shrink=ShrinkConfig(settle_seconds=0, post_zero_settle_seconds=0),
    )
    config.update.enabled = False
    return config


@pytest.fixture
def image_file(temp_dir: Path) -> Path:
    """A sparse file standing in for a disk image."""
    path = temp_dir / "test.img"
    with open(path, "wb") as f:
        f.truncate(IMAGE_SIZE)
    return path


def script_shrinkable_image(runner: FakeRunner, image: Path) -> FakeRunner:
    """Script the tool answers for an image with room to shrink.

    ``mount`` fails so the auto-expand and zeroing steps skip themselves.
    """
    img = str(image)
    runner.on("parted", "-ms", img, "unit", "B", "print", stdout=PARTED_MACHINE.format(image=img))
    runner.on(
        "parted", "-ms", img, "unit", "B", "print", "free",
        stdout=PARTED_FREE_AFTER.format(image=img),
    )
    runner.on("parted", "-s", img, "unit", "B", "print", stdout=PARTED_HUMAN.format(image=img))
    runner.on("losetup", "-f", "--show", stdout=f"{LOOP_DEVICE}\n")
    runner.on("tune2fs", "-l", stdout=TUNE2FS)
    runner.on("resize2fs", "-P", stdout=RESIZE2FS_MINIMUM)
    runner.on("mount", returncode=32, stderr="mount: permission denied")
    return runner


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
