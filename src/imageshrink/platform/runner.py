"""
External tool runner.

Every filesystem, partition, loopback and compression tool goes through
``ToolRunner.run_command``. There are no retries and no timeouts: a tool
failing on a half-modified filesystem must surface to the caller.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import time

from imageshrink.core.logging import get_logger
from imageshrink.platform.base import CommandResult

logger = get_logger(__name__)


class ToolRunner:
    """Runs external tools under the POSIX locale."""

    # Tool names (can be overridden for testing)
    PARTED = "parted"
    PARTPROBE = "partprobe"
    LOSETUP = "losetup"
    TUNE2FS = "tune2fs"
    E2FSCK = "e2fsck"
    RESIZE2FS = "resize2fs"
    MD5SUM = "md5sum"
    MOUNT = "mount"
    UMOUNT = "umount"
    CP = "cp"

    REQUIRED_TOOLS = (PARTED, LOSETUP, TUNE2FS, MD5SUM, E2FSCK, RESIZE2FS)

    def __init__(self, env: dict[str, str] | None = None) -> None:
        self.env = dict(os.environ if env is None else env)
        for var in ("LANGUAGE", "LC_ALL", "LANG"):
            self.env[var] = "POSIX"

    def check_tool(self, tool: str) -> bool:
        """Check if a tool is available."""
        return shutil.which(tool, path=self.env.get("PATH")) is not None

    def missing_tools(self, tools: list[str] | tuple[str, ...]) -> list[str]:
        return [tool for tool in tools if not self.check_tool(tool)]

    def run_command(
        self,
        command: list[str],
        check: bool = True,
        capture_output: bool = True,
    ) -> CommandResult:
        """Run a system command.

        With ``capture_output`` off the tool writes straight to the terminal
        and the result carries empty stdout/stderr.
        """
        logger.debug("Running command", command=command)
        start_time = time.time()

        try:
            result = subprocess.run(
                command,
                capture_output=capture_output,
                text=True,
                env=self.env,
            )
        except OSError as e:
            logger.warning("Command could not be started", command=command, error=str(e))
            return CommandResult(
                returncode=-1,
                stdout="",
                stderr=str(e),
                command=command,
                duration_seconds=time.time() - start_time,
            )

        duration = time.time() - start_time
        cmd_result = CommandResult(
            returncode=result.returncode,
            stdout=result.stdout if capture_output else "",
            stderr=result.stderr if capture_output else "",
            command=command,
            duration_seconds=duration,
        )

        if check and result.returncode != 0:
            logger.warning(
                "Command failed",
                command=command,
                returncode=result.returncode,
                stderr=cmd_result.stderr[:500],
            )
        else:
            logger.debug(
                "Command finished",
                command=command,
                returncode=result.returncode,
                duration_seconds=round(duration, 3),
            )

        return cmd_result
