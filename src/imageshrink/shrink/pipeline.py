"""
Shrink pipeline.

Probe, auto-expand, consistency check, plan, execute, compress. The image
file is the one resource every stage works on.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import humanize

from imageshrink.core.config import ImageShrinkConfig
from imageshrink.core.context import RunContext
from imageshrink.core.errors import CopyError
from imageshrink.core.logging import get_logger, info, log_variables
from imageshrink.core.models import ShrinkResult
from imageshrink.core.safety import PreflightReport, create_standard_preflight_checker
from imageshrink.platform import is_admin as platform_is_admin
from imageshrink.platform.runner import ToolRunner
from imageshrink.shrink.autoexpand import AutoExpander
from imageshrink.shrink.compress import Compressor, strip_extension
from imageshrink.shrink.executor import ShrinkExecutor
from imageshrink.shrink.fsck import FilesystemChecker
from imageshrink.shrink.planner import ShrinkPlanner
from imageshrink.shrink.probe import ImageProbe

logger = get_logger(__name__)


class ImageShrinker:
    """
    Shrinks one disk image.

    With a ``destination`` the source is copied first and only the copy is
    modified.
    """

    def __init__(
        self,
        config: ImageShrinkConfig,
        source: Path,
        destination: Path | None = None,
        runner: ToolRunner | None = None,
        is_admin: Callable[[], bool] | None = None,
    ) -> None:
        self.config = config
        self.source = source
        self.destination = destination
        self.runner = runner or ToolRunner()
        self.is_admin = is_admin or platform_is_admin

    def preflight(self) -> PreflightReport:
        """Run precondition checks; raises on the first failure."""
        checker = create_standard_preflight_checker()
        report = checker.run_checks(
            {
                "image": self.source,
                "is_admin": self.is_admin,
                "runner": self.runner,
                "compression_tool": self.config.compression.tool,
                "parallel": self.config.compression.parallel,
            }
        )
        report.raise_for_failure()
        return report

    def copy_image(self, destination: Path) -> Path:
        """Copy the source to ``destination``, keeping its owner."""
        target = strip_extension(destination, self.config.compression.tool)
        info(f"Copying {self.source} to {target}...")

        result = self.runner.run_command(
            [ToolRunner.CP, "--reflink=auto", "--sparse=always", str(self.source), str(target)]
        )
        if not result.success:
            raise CopyError("Could not copy file...", returncode=result.returncode)

        st = self.source.stat()
        try:
            os.chown(target, st.st_uid, st.st_gid)
        except OSError as e:
            logger.warning("Could not chown copied image", path=str(target), error=str(e))
        return target

    def run(self) -> ShrinkResult:
        self.preflight()
        compressor = Compressor(self.runner, self.config.compression, self.config.program_name)

        with RunContext(self.config, self.source, self.runner) as ctx:
            if self.destination is not None:
                ctx.image = self.copy_image(self.destination)

            size_before = ctx.image.stat().st_size
            probe = ImageProbe(ctx).probe()
            partition = probe.partition
            device = probe.device
            log_variables(logger, "start", beforesize=size_before, image=str(ctx.image))

            autoexpander = AutoExpander(ctx)
            if partition.is_logical:
                ctx.add_warning("imageshrink does not yet support autoexpanding of this type of image")
            elif not self.config.shrink.skip_autoexpand:
                autoexpander.install()
            else:
                info("Skipping autoexpanding process...")

            FilesystemChecker(self.runner, self.config.repair).check(device)

            plan = ShrinkPlanner(self.runner, self.config.shrink.margins).plan(
                device, probe.filesystem
            )
            if plan.needs_shrink:
                ShrinkExecutor(ctx, autoexpander).execute(partition, plan)
            else:
                info("Filesystem already shrunk to smallest size. Skipping filesystem shrinking")
            ctx.release_loopback()

            if compressor.enabled:
                ctx.image = compressor.compress(ctx.image)

            size_after = ctx.image.stat().st_size
            log_variables(logger, "finish", aftersize=size_after)
            info(
                f"Shrunk {ctx.image} from {humanize.naturalsize(size_before, binary=True)} "
                f"to {humanize.naturalsize(size_after, binary=True)}"
            )

            return ShrinkResult(
                image_path=ctx.image,
                size_before=size_before,
                size_after=size_after,
                size_state=plan,
                partition=partition,
                autoexpand=ctx.autoexpand,
                compressed=compressor.enabled,
                warnings=list(ctx.warnings),
            )
