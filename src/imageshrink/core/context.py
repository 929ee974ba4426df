"""
imageshrink run context.

Holds the state of one shrink run (working image, loopback binding, mount
directory, auto-expand changes) and guarantees that the loopback binding
and mount are released exactly once however the run ends.
"""

from __future__ import annotations

import os
import signal
import tempfile
import threading
from pathlib import Path
from types import FrameType
from typing import Any

import psutil

from imageshrink.core.config import ImageShrinkConfig
from imageshrink.core.errors import PartitionProbeError
from imageshrink.core.logging import get_logger, warn
from imageshrink.core.models import AutoexpandState
from imageshrink.platform.runner import ToolRunner

logger = get_logger(__name__)


def _raise_system_exit(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(128 + signum)


class RunContext:
    """
    State threaded through every pipeline stage.

    Use as a context manager; leaving the block releases the loopback binding,
    unmounts and removes the mount directory, and hands the debug log back to
    the owner of the source image.
    """

    def __init__(
        self,
        config: ImageShrinkConfig,
        source: Path,
        runner: ToolRunner | None = None,
    ) -> None:
        self.config = config
        self.source = source
        self.image = source
        self.runner = runner or ToolRunner()
        self.loopback: str | None = None
        self.mount_dir: Path | None = None
        self.autoexpand = AutoexpandState()
        self.warnings: list[str] = []
        self._closed = False
        self._previous_sigterm: Any = None

    def __enter__(self) -> RunContext:
        if threading.current_thread() is threading.main_thread():
            self._previous_sigterm = signal.signal(signal.SIGTERM, _raise_system_exit)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            self.close()
        finally:
            if self._previous_sigterm is not None:
                signal.signal(signal.SIGTERM, self._previous_sigterm)
                self._previous_sigterm = None

    def add_warning(self, warning: str) -> None:
        """Tell the operator once and keep the warning for the run summary."""
        warn(warning)
        self.warnings.append(warning)

    # ==================== Loopback ====================

    def attach_loopback(self, offset: int) -> str:
        """Bind the image from ``offset`` to a free loop device."""
        if self.loopback is not None:
            raise RuntimeError(f"Loopback already attached: {self.loopback}")

        result = self.runner.run_command(
            [ToolRunner.LOSETUP, "-f", "--show", "-o", str(offset), str(self.image)]
        )
        device = result.stdout.strip()
        if not result.success or not device:
            raise PartitionProbeError(
                f"losetup failed with rc {result.returncode}: {result.stderr.strip()}",
                returncode=result.returncode,
            )

        self.loopback = device
        logger.debug("Loopback attached", device=device, offset=offset, image=str(self.image))
        return device

    def release_loopback(self) -> None:
        """Detach the loopback binding if one is held. Safe to call repeatedly."""
        if self.loopback is None:
            return

        device = self.loopback
        self.loopback = None

        probe = self.runner.run_command([ToolRunner.LOSETUP, device], check=False)
        if probe.success:
            result = self.runner.run_command([ToolRunner.LOSETUP, "-d", device])
            if not result.success:
                logger.error("Failed to detach loopback", device=device, stderr=result.stderr)
                return
        logger.debug("Loopback released", device=device)

    # ==================== Mounting ====================

    def ensure_mount_dir(self) -> Path:
        if self.mount_dir is None:
            self.mount_dir = Path(tempfile.mkdtemp(prefix="imageshrink."))
        return self.mount_dir

    def is_mounted(self) -> bool:
        """Check whether the mount directory currently has a filesystem mounted."""
        if self.mount_dir is None:
            return False
        target = os.path.realpath(self.mount_dir)
        return any(
            os.path.realpath(part.mountpoint) == target
            for part in psutil.disk_partitions(all=True)
        )

    def mount(self, read_write: bool = False) -> bool:
        """Mount the loopback device on the mount directory."""
        if self.loopback is None:
            return False
        mount_dir = self.ensure_mount_dir()
        cmd = [ToolRunner.MOUNT, self.loopback, str(mount_dir)]
        if read_write:
            cmd.extend(["-o", "rw"])
        result = self.runner.run_command(cmd)
        return result.success

    def unmount(self) -> bool:
        if self.mount_dir is None:
            return True
        result = self.runner.run_command([ToolRunner.UMOUNT, str(self.mount_dir)])
        return result.success

    # ==================== Cleanup ====================

    def close(self) -> None:
        """Release everything the run acquired. Runs once."""
        if self._closed:
            return
        self._closed = True

        try:
            if self.is_mounted():
                self.unmount()
        finally:
            self.release_loopback()
            self._remove_mount_dir()
            self._chown_debug_log()

    def _remove_mount_dir(self) -> None:
        if self.mount_dir is None or self.is_mounted():
            return
        try:
            self.mount_dir.rmdir()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove mount directory", path=str(self.mount_dir), error=str(e))
        self.mount_dir = None

    def _chown_debug_log(self) -> None:
        if not self.config.debug:
            return
        log_file = self.config.logging.debug_log_file
        if not log_file.exists():
            return
        try:
            st = self.source.stat()
            os.chown(log_file, st.st_uid, st.st_gid)
        except OSError as e:
            logger.warning("Could not chown debug log", path=str(log_file), error=str(e))
