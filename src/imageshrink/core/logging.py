"""
imageshrink logging.

Two channels: structured structlog events (console at the configured level,
plus the per-run debug log when ``-d`` is given), and the operator-facing
progress lines printed through rich. Progress lines are also recorded as
structured events so the debug log tells the whole story of a run.
"""

from __future__ import annotations

import logging
import sys
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.markup import escape
from structlog.types import EventDict, WrappedLogger

if TYPE_CHECKING:
    from imageshrink.core.config import LoggingConfig


PROGRAM = "imageshrink"

console = Console(highlight=False)
_configured = False


def add_run_timestamp(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Stamp each event with local wall-clock time and its level."""
    event_dict["timestamp"] = datetime.now().isoformat(timespec="milliseconds")
    event_dict["level"] = method_name.upper()
    return event_dict


def _debug_log_handler(config: LoggingConfig) -> logging.Handler:
    # Each debug run starts with an empty log.
    log_file = config.debug_log_file
    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.unlink(missing_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    return handler


def setup_logging(config: LoggingConfig, debug: bool = False) -> None:
    """Route structlog through the stdlib handlers for this run."""
    global _configured

    if _configured:
        return

    handlers: list[logging.Handler] = []
    if config.console_enabled:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(getattr(logging, config.level))
        handlers.append(stderr_handler)
    if debug:
        handlers.append(_debug_log_handler(config))

    logging.basicConfig(level=logging.DEBUG, handlers=handlers, format="%(message)s", force=True)

    if config.json_format:
        renderer: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]

    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            add_run_timestamp,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            *renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name or PROGRAM)


_progress = get_logger(f"{PROGRAM}.progress")


def info(message: str) -> None:
    """Print an operator-facing progress line."""
    console.print(f"{PROGRAM}: {message}", markup=False)
    _progress.debug(message)


def warn(message: str) -> None:
    console.print(f"[yellow]WARNING:[/yellow] {escape(message)}")
    _progress.debug(message, warning=True)


def error(provenance: str, message: str) -> None:
    """Print an error line tagged with where it was raised."""
    console.print(f"[red]{PROGRAM}: ERROR occurred in {provenance}:[/red] {escape(message)}")
    _progress.error(message, provenance=provenance)


def log_variables(logger: structlog.stdlib.BoundLogger, step: str, **values: Any) -> None:
    """Snapshot the run variables that matter at ``step``."""
    logger.debug("Variables", step=step, **values)


class OperationLogger:
    """Logs a tool step's start, outcome and duration."""

    def __init__(
        self,
        step: str,
        logger: structlog.stdlib.BoundLogger | None = None,
        **context: Any,
    ) -> None:
        self.logger = (logger or get_logger()).bind(step=step, **context)
        self._started = 0.0

    def __enter__(self) -> OperationLogger:
        self._started = time.monotonic()
        self.logger.debug("Step started")
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        elapsed = round(time.monotonic() - self._started, 3)
        if exc_type is None:
            self.logger.debug("Step finished", duration_seconds=elapsed)
        else:
            self.logger.error(
                "Step failed",
                duration_seconds=elapsed,
                error_type=exc_type.__name__,
                error=str(exc_val),
            )
