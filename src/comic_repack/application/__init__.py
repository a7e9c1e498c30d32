"""Application-layer use-cases, ports and result objects."""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import Executor
from pathlib import Path
from typing import TYPE_CHECKING

from comic_repack.application.ports import (
    ArchiveSink,
    ArchiveSource,
    EntryTransformer,
    NullProgress,
    ProgressSink,
)
from comic_repack.application.results import (
    ConversionResult,
    FileJob,
    RunSummary,
    TransformOutcome,
)
from comic_repack.types import PathSpecs

if TYPE_CHECKING:
    from comic_repack.schemas import RepackConfig


async def convert_archives(
    sources: Sequence[Path],
    outdir: Path,
    config: RepackConfig,
    *,
    transformer: EntryTransformer | None = None,
    codec_pool: Executor | None = None,
    progress: ProgressSink | None = None,
) -> RunSummary:
    """Convert source archives via lazy use-case import."""
    from comic_repack.application.pipeline import convert_archives as _impl

    return await _impl(
        sources,
        outdir,
        config,
        transformer=transformer,
        codec_pool=codec_pool,
        progress=progress,
    )


def run(
    config: RepackConfig,
    inputs: PathSpecs,
    output: Path | None = None,
    *,
    progress: ProgressSink | None = None,
) -> RunSummary:
    """Run a whole conversion via lazy use-case import."""
    from comic_repack.application.pipeline import run as _impl

    return _impl(config, inputs, output, progress=progress)


__all__ = [
    "ArchiveSink",
    "ArchiveSource",
    "ConversionResult",
    "EntryTransformer",
    "FileJob",
    "NullProgress",
    "ProgressSink",
    "RunSummary",
    "TransformOutcome",
    "convert_archives",
    "run",
]
