"""
First-boot auto-expand hook.

Installs an ``/etc/rc.local`` that grows the root partition and filesystem
to fill the device on first boot, then puts the original ``rc.local`` back.
Installation is best effort; failures only produce warnings.
"""

from __future__ import annotations

import os
import time
from pathlib import Path

from imageshrink.core.context import RunContext
from imageshrink.core.logging import get_logger, info
from imageshrink.core.models import AutoexpandState
from imageshrink.platform.runner import ToolRunner

logger = get_logger(__name__)

MARKER = "## imageshrink autoexpand ##"

HOOK_SCRIPT = f"""#!/bin/bash
{MARKER}
# Grows the root partition and its filesystem to fill the boot device, then
# restores the original /etc/rc.local and reboots. Runs once.

restore_rc_local() {{
    if [ -e /etc/rc.local.bak ] || [ -L /etc/rc.local.bak ]; then
        mv /etc/rc.local.bak /etc/rc.local
    else
        printf '#!/bin/sh -e\\nexit 0\\n' > /etc/rc.local
        chmod +x /etc/rc.local
    fi
}}

set -e

root_part="$(findmnt -n -o SOURCE /)"
root_name="${{root_part##*/}}"
root_dev="/dev/$(lsblk -no pkname "$root_part")"
part_num="$(cat "/sys/class/block/$root_name/partition")"

if [ -z "$root_dev" ] || [ "$root_dev" = "/dev/" ] || [ -z "$part_num" ]; then
    echo "Could not determine root device, skipping resize."
    restore_rc_local
    exit 0
fi

echo "Expanding $root_part to fill $root_dev..."

# Relocate a GPT backup header left behind when the image was truncated.
if command -v sgdisk > /dev/null 2>&1; then
    sgdisk -e "$root_dev" > /dev/null 2>&1 || true
fi

if command -v growpart > /dev/null 2>&1; then
    growpart "$root_dev" "$part_num" || true
else
    echo Yes | parted ---pretend-input-tty "$root_dev" resizepart "$part_num" 100%
fi

partprobe "$root_dev" || partx -u "$root_dev" || true
resize2fs "$root_part"

echo "Partition and filesystem resize successful."
restore_rc_local

sleep 1
reboot
exit 0
"""


class AutoExpander:
    """Installs and rolls back the first-boot expansion hook."""

    def __init__(self, context: RunContext) -> None:
        self.context = context
        self.runner = context.runner
        self.state = context.autoexpand

    def _skip(self, reason: str) -> AutoexpandState:
        self.state.skipped_reason = reason
        self.context.add_warning(reason)
        return self.state

    def install(self) -> AutoexpandState:
        """Mount the filesystem read-write and install the hook."""
        device = self.context.loopback
        if device is None:
            return self._skip("No loopback device, autoexpand will not be enabled")

        self.runner.run_command([ToolRunner.PARTPROBE, device], check=False)
        time.sleep(self.context.config.shrink.settle_seconds)
        self.runner.run_command([ToolRunner.UMOUNT, device], check=False)

        if not self.context.mount(read_write=True):
            return self._skip("Unable to mount loopback, autoexpand will not be enabled")

        try:
            etc = self.context.ensure_mount_dir() / "etc"
            # An absolute link would resolve against the host, not the image.
            if etc.is_symlink():
                return self._skip("/etc is a symlink, autoexpand will not be enabled")
            if not etc.is_dir():
                return self._skip("/etc not found, autoexpand will not be enabled")
            return self._write_hook(etc)
        finally:
            self.context.unmount()

    def _write_hook(self, etc: Path) -> AutoexpandState:
        rc_local, backup = etc / "rc.local", etc / "rc.local.bak"

        # Links are moved aside as links and never read or written through.
        if rc_local.is_symlink():
            info("/etc/rc.local is a symlink, moving the link aside")
        elif not rc_local.is_file():
            info("An existing /etc/rc.local was not found, autoexpand may fail...")
        elif MARKER in rc_local.read_text(errors="replace"):
            logger.info("Autoexpand hook already present", path=str(rc_local))
            return self.state

        info("Creating new /etc/rc.local")
        try:
            if os.path.lexists(rc_local):
                os.replace(rc_local, backup)
                self.state.backup_created = True
            _create_script(rc_local, HOOK_SCRIPT)
        except OSError as e:
            self._undo(rc_local, backup)
            return self._skip(f"Could not write /etc/rc.local ({e}), autoexpand will not be enabled")

        self.state.installed = True
        logger.debug("Autoexpand hook installed", backup=self.state.backup_created)
        return self.state

    def _undo(self, rc_local: Path, backup: Path) -> None:
        if self.state.backup_created and os.path.lexists(backup):
            os.replace(backup, rc_local)
        elif not rc_local.is_symlink():
            rc_local.unlink(missing_ok=True)
        self.state.backup_created = False
        self.state.installed = False

    def restore(self) -> bool:
        """Put the original boot hook back. Returns False if that failed."""
        if not self.state.installed:
            return True

        if not self.context.mount(read_write=True):
            logger.error("Unable to mount loopback to restore /etc/rc.local")
            return False

        try:
            etc = self.context.ensure_mount_dir() / "etc"
            self._undo(etc / "rc.local", etc / "rc.local.bak")
        except OSError as e:
            logger.error("Failed to restore /etc/rc.local", error=str(e))
            return False
        finally:
            self.context.unmount()

        info("Restored original /etc/rc.local")
        return True


def _create_script(path: Path, content: str) -> None:
    """Create ``path`` as a new executable file; fails if anything is there."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL | os.O_NOFOLLOW, 0o755)
    os.fchmod(fd, 0o755)
    with os.fdopen(fd, "w") as handle:
        handle.write(content)
