"""
imageshrink configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    console_enabled: bool = True
    json_format: bool = False
    debug_log_file: Path = Field(default_factory=lambda: Path.cwd() / "imageshrink.log")

    @field_validator("debug_log_file", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class CompressionConfig(BaseModel):
    """Configuration for post-shrink compression."""

    # Validated against the supported tools during preflight, not here, so an
    # unknown tool maps to its own exit status.
    tool: str | None = None
    parallel: bool = False
    verbose: bool = False


class RepairConfig(BaseModel):
    """Configuration for the e2fsck repair ladder."""

    advanced: bool = False
    error_threshold: int = Field(default=4, ge=1)
    backup_superblock: int = Field(default=32768, ge=1)


class ShrinkConfig(BaseModel):
    """Configuration for the shrink itself."""

    margins: list[int] = Field(default_factory=lambda: [5000, 1000, 100])
    skip_autoexpand: bool = False
    zero_free_space: bool = True
    settle_seconds: float = Field(default=3.0, ge=0)
    post_zero_settle_seconds: float = Field(default=1.0, ge=0)

    @field_validator("margins")
    @classmethod
    def sort_margins(cls, v: list[int]) -> list[int]:
        if any(m <= 0 for m in v):
            raise ValueError("margins must be positive block counts")
        return sorted(v, reverse=True)


class UpdateConfig(BaseModel):
    """Configuration for the release update check."""

    enabled: bool = True
    url: str | None = None
    timeout_seconds: float = Field(default=5.0, gt=0)


class ImageShrinkConfig(BaseModel):
    """Main imageshrink configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    compression: CompressionConfig = Field(default_factory=CompressionConfig)
    repair: RepairConfig = Field(default_factory=RepairConfig)
    shrink: ShrinkConfig = Field(default_factory=ShrinkConfig)
    update: UpdateConfig = Field(default_factory=UpdateConfig)
    debug: bool = False
    program_name: str = "imageshrink"

    @classmethod
    def load(cls, config_path: Path | None = None) -> ImageShrinkConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = Path.home() / ".imageshrink" / "config.json"

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def with_overrides(
        self,
        skip_autoexpand: bool | None = None,
        verbose: bool | None = None,
        update_check: bool | None = None,
        advanced_repair: bool | None = None,
        compression_tool: str | None = None,
        parallel: bool | None = None,
        debug: bool | None = None,
    ) -> ImageShrinkConfig:
        """Return a copy with command-line overrides applied.

        ``None`` leaves the loaded value in place.
        """
        shrink = self.shrink.model_copy(
            update=_present(skip_autoexpand=skip_autoexpand)
        )
        compression = self.compression.model_copy(
            update=_present(tool=compression_tool, parallel=parallel, verbose=verbose)
        )
        repair = self.repair.model_copy(update=_present(advanced=advanced_repair))
        update = self.update.model_copy(update=_present(enabled=update_check))
        return self.model_copy(
            update={
                "shrink": shrink,
                "compression": compression,
                "repair": repair,
                "update": update,
                **_present(debug=debug),
            }
        )


def _present(**values: object) -> dict[str, object]:
    return {k: v for k, v in values.items() if v is not None}
