"""Application-layer job and result objects."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from comic_repack.types import FileFailure, TransformAction

if TYPE_CHECKING:
    from comic_repack.application.ports import ArchiveSink, ArchiveSource
    from comic_repack.entries import Entry


@dataclass(frozen=True)
class TransformOutcome:
    """Output of the transform decision for one entry."""

    output_name: str
    output_bytes: bytes
    action: TransformAction


@dataclass
class FileJob:
    """Everything needed to convert one source archive."""

    source_path: Path
    reader: ArchiveSource
    entries: list[Entry]
    # Count before filtering, for progress accounting.
    total_entries: int
    writer: ArchiveSink
    output_path: Path


@dataclass(frozen=True)
class ConversionResult:
    """Outcome of a file whose destination container was closed successfully."""

    source_path: Path
    output_path: Path
    output_metadata: os.stat_result
    converted: int = 0
    failed: int = 0

    @property
    def output_size(self) -> int:
        return self.output_metadata.st_size


@dataclass
class RunSummary:
    """Results of a whole run."""

    results: list[ConversionResult] = field(default_factory=list)
    failures: list[FileFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures and all(r.failed == 0 for r in self.results)
