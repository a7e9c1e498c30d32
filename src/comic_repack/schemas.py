"""Pydantic schemas for runtime validation of repack configuration."""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from comic_repack.application.scheduler import entry_budget
from comic_repack.errors import ConfigError
from comic_repack.formats import ArchiveType, ImageFormat, parse_image_format


def default_jobs() -> int:
    """Default worker budget: CPU count minus one, at least one."""
    return max((os.cpu_count() or 1) - 1, 1)


class RepackConfig(BaseModel):
    """Validated configuration shared by every file and entry task."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    image_format: ImageFormat = Field(default_factory=lambda: parse_image_format("avif"))
    quality: int = Field(default=100, ge=1, le=100)
    lossless: bool = False
    speed: int = Field(default=3, ge=1, le=10)
    jobs: int = Field(default_factory=default_jobs, ge=1)
    file_jobs: int = Field(default=1, ge=1)
    archive: ArchiveType = ArchiveType.CBZ
    force: bool = False

    @field_validator("image_format", mode="before")
    @classmethod
    def _parse_image_format(cls, value: object) -> object:
        if isinstance(value, str):
            return parse_image_format(value)
        return value

    @property
    def entry_jobs(self) -> int:
        """Entry-level concurrency per file, derived once from the budgets."""
        return entry_budget(self.jobs, self.file_jobs)


def build_config(**kwargs: object) -> RepackConfig:
    """Build a validated config, translating validation failures.

    Raises
    ------
    ConfigError
        If any value is out of range or the image format is unsupported.
    """
    try:
        return RepackConfig(**kwargs)
    except ValidationError as exc:
        raise ConfigError(f"Invalid repack parameters: {exc}") from exc
