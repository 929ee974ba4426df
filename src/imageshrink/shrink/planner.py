"""
Shrink planner.

Decides how many blocks the filesystem should keep.
"""

from __future__ import annotations

from collections.abc import Sequence

from imageshrink.core.errors import MinimumSizeError
from imageshrink.core.logging import get_logger, log_variables
from imageshrink.core.models import FilesystemInfo, FilesystemSizeState
from imageshrink.platform.parsers import parse_resize2fs_minimum
from imageshrink.platform.runner import ToolRunner

logger = get_logger(__name__)

DEFAULT_MARGINS = (5000, 1000, 100)


def choose_margin(headroom: int, margins: Sequence[int] = DEFAULT_MARGINS) -> int:
    """Largest margin strictly below ``headroom``, or 0 if none fits."""
    for margin in sorted(margins, reverse=True):
        if headroom > margin:
            return margin
    return 0


def compute_target_blocks(
    current: int, minimum: int, margins: Sequence[int] = DEFAULT_MARGINS
) -> tuple[int, int]:
    """
    Compute the target block count for a filesystem.

    Returns ``(target, margin)``. When ``current == minimum`` the target is
    the current size and nothing needs shrinking.
    """
    if current < minimum:
        raise ValueError(f"Current block count {current} is below the minimum {minimum}")

    margin = choose_margin(current - minimum, margins)
    target = minimum + margin
    assert minimum <= target <= current
    return target, margin


class ShrinkPlanner:
    """Queries the filesystem minimum and plans the target size."""

    def __init__(self, runner: ToolRunner, margins: Sequence[int] = DEFAULT_MARGINS) -> None:
        self.runner = runner
        self.margins = tuple(margins)

    def query_minimum(self, device: str) -> int:
        result = self.runner.run_command([ToolRunner.RESIZE2FS, "-P", device])
        if not result.success:
            raise MinimumSizeError(
                f"resize2fs failed with rc {result.returncode}", returncode=result.returncode
            )
        try:
            return parse_resize2fs_minimum(result.stdout)
        except ValueError as e:
            raise MinimumSizeError(f"resize2fs output could not be read: {e}") from e

    def plan(self, device: str, filesystem: FilesystemInfo) -> FilesystemSizeState:
        minimum = self.query_minimum(device)
        current = filesystem.block_count
        log_variables(logger, "minimum", currentsize=current, minsize=minimum)

        # resize2fs estimates can exceed a filesystem that is already tight;
        # never plan growth.
        minimum = min(minimum, current)
        target, margin = compute_target_blocks(current, minimum, self.margins)
        state = FilesystemSizeState(
            current_blocks=current,
            minimum_blocks=minimum,
            block_size=filesystem.block_size,
            target_blocks=target,
            margin_blocks=margin,
        )
        log_variables(
            logger,
            "plan",
            extra_space=state.headroom_blocks,
            margin=margin,
            targetsize=target,
        )
        return state
