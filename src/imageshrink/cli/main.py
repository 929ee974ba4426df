"""
imageshrink CLI Main Entry Point.

Usage: imageshrink [-adhnrsvzZ] imagefile.img [newimagefile.img]
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
import humanize
from rich.panel import Panel

from imageshrink import __version__
from imageshrink.core.config import ImageShrinkConfig
from imageshrink.core.errors import ExitCode, ShrinkError, UnsupportedCompressionError
from imageshrink.core.logging import console, error, info, setup_logging, warn
from imageshrink.core.models import ShrinkResult
from imageshrink.core.update import check_for_update
from imageshrink.shrink.pipeline import ImageShrinker


def render_summary(result: ShrinkResult) -> Panel:
    """Build the end-of-run summary panel."""
    state = result.size_state
    if state is None:
        blocks = "(unknown)"
    elif state.needs_shrink:
        blocks = f"{state.current_blocks} -> {state.target_blocks} (margin {state.margin_blocks})"
    else:
        blocks = f"{state.current_blocks} (already minimal)"

    if result.autoexpand.installed:
        autoexpand = "Installed"
    else:
        autoexpand = result.autoexpand.skipped_reason or "Not installed"

    return Panel(
        f"""[cyan]Image:[/cyan] {result.image_path}
[cyan]Before:[/cyan] {humanize.naturalsize(result.size_before, binary=True)}
[cyan]After:[/cyan] {humanize.naturalsize(result.size_after, binary=True)}
[cyan]Filesystem blocks:[/cyan] {blocks}
[cyan]Autoexpand:[/cyan] {autoexpand}
[cyan]Compressed:[/cyan] {"Yes" if result.compressed else "No"}
[cyan]Warnings:[/cyan] {len(result.warnings)}""",
        title="Shrink Summary",
    )


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="imageshrink")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "-s",
    "--skip-autoexpand",
    is_flag=True,
    help="Don't expand filesystem when image is booted the first time",
)
@click.option("-v", "--verbose", is_flag=True, help="Be verbose")
@click.option("-n", "--no-update-check", is_flag=True, help="Disable automatic update checking")
@click.option(
    "-r",
    "--advanced-repair",
    is_flag=True,
    help="Use advanced filesystem repair option if the normal one fails",
)
@click.option("-z", "--gzip", "use_gzip", is_flag=True, help="Compress image after shrinking with gzip")
@click.option("-Z", "--xz", "use_xz", is_flag=True, help="Compress image after shrinking with xz")
@click.option("-a", "--parallel", is_flag=True, help="Compress image in parallel using multiple cores")
@click.option("-d", "--debug", is_flag=True, help="Write debug messages in a debug log file")
@click.argument("image_file", type=click.Path(path_type=Path))
@click.argument("new_image_file", type=click.Path(path_type=Path), required=False)
def cli(
    config_path: Path | None,
    skip_autoexpand: bool,
    verbose: bool,
    no_update_check: bool,
    advanced_repair: bool,
    use_gzip: bool,
    use_xz: bool,
    parallel: bool,
    debug: bool,
    image_file: Path,
    new_image_file: Path | None,
) -> ShrinkResult:
    """
    Shrink a disk image to the size of its data.

    The trailing ext2/3/4 partition of IMAGE_FILE is shrunk to its minimum
    size and the file is truncated. If NEW_IMAGE_FILE is given the image is
    copied there first and only the copy is changed.
    """
    if use_gzip and use_xz:
        raise UnsupportedCompressionError("Select only one of -z and -Z.")

    compression_tool = "gzip" if use_gzip else "xz" if use_xz else None
    config = ImageShrinkConfig.load(config_path).with_overrides(
        skip_autoexpand=skip_autoexpand or None,
        verbose=verbose or None,
        update_check=False if no_update_check else None,
        advanced_repair=advanced_repair or None,
        compression_tool=compression_tool,
        parallel=parallel or None,
        debug=debug or None,
    )

    if config.debug:
        info(f"Creating log file {config.logging.debug_log_file}")
    setup_logging(config.logging, debug=config.debug)

    console.print(f"imageshrink {__version__}\n")

    latest = check_for_update(config.update, __version__)
    if latest:
        warn(f"You do not appear to be running the latest version of imageshrink ({latest}).")
        console.print()

    result = ImageShrinker(config, image_file, new_image_file).run()
    console.print(render_summary(result))
    return result


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    try:
        cli.main(args=argv, prog_name="imageshrink", standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(ExitCode.USAGE)
    except ShrinkError as e:
        error(e.provenance, e.message)
        sys.exit(e.exit_code)
    except (click.Abort, KeyboardInterrupt):
        console.print("\n[yellow]Operation cancelled[/yellow]")
        sys.exit(ExitCode.INTERRUPTED)


if __name__ == "__main__":
    main()
