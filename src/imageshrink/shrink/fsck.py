"""
Filesystem consistency checker.

Walks an escalating ladder of e2fsck invocations until one leaves the
filesystem consistent enough to shrink.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

from imageshrink.core.config import RepairConfig
from imageshrink.core.errors import FilesystemCheckError
from imageshrink.core.logging import get_logger, info
from imageshrink.platform.runner import ToolRunner

logger = get_logger(__name__)


class CheckState(Enum):
    """Consistency check progress."""

    UNCHECKED = auto()
    CHECKED_OK = auto()
    CHECKED_FAILED = auto()


@dataclass
class FsckRung:
    """One escalation step: a message and the e2fsck arguments it runs."""

    name: str
    message: str
    args: list[str]


def build_ladder(device: str, config: RepairConfig) -> list[FsckRung]:
    """Build the escalation ladder for ``device``."""
    ladder = [
        FsckRung("preen", "Checking filesystem", ["-pf", device]),
        FsckRung("force-yes", "Trying to recover corrupted filesystem", ["-y", device]),
    ]
    if config.advanced:
        ladder.append(
            FsckRung(
                "backup-superblock",
                "Trying to recover corrupted filesystem - Phase 2",
                ["-fy", "-b", str(config.backup_superblock), device],
            )
        )
    return ladder


class FilesystemChecker:
    """Runs the e2fsck ladder against a loop device."""

    def __init__(self, runner: ToolRunner, config: RepairConfig) -> None:
        self.runner = runner
        self.config = config
        self.state = CheckState.UNCHECKED
        self.attempts: list[tuple[str, int]] = []

    def check(self, device: str) -> CheckState:
        """Check and repair ``device``; raise if every rung fails."""
        for index, rung in enumerate(build_ladder(device, self.config)):
            if index == 1:
                info("Filesystem error detected!")
            info(rung.message)

            result = self.runner.run_command(
                [ToolRunner.E2FSCK, *rung.args], check=False, capture_output=False
            )
            self.attempts.append((rung.name, result.returncode))
            logger.debug("e2fsck finished", rung=rung.name, returncode=result.returncode)

            if 0 <= result.returncode < self.config.error_threshold:
                self.state = CheckState.CHECKED_OK
                return self.state

        self.state = CheckState.CHECKED_FAILED
        raise FilesystemCheckError("Filesystem recoveries failed. Giving up...")
