"""Top-level API for comic archive re-encoding."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from comic_repack.types import PathSpecs

if TYPE_CHECKING:
    from comic_repack.application.ports import ProgressSink
    from comic_repack.application.results import RunSummary
    from comic_repack.schemas import RepackConfig

__version__ = "0.1.0"


def build_config(**kwargs: object) -> RepackConfig:
    """Build a validated :class:`~comic_repack.schemas.RepackConfig`.

    Raises
    ------
    ConfigError
        If any value is out of range or the image format is unsupported.
    """
    from .schemas import build_config as _impl

    return _impl(**kwargs)


async def convert_archives(
    sources: Sequence[Path],
    outdir: Path,
    config: RepackConfig,
    *,
    progress: ProgressSink | None = None,
) -> RunSummary:
    """Convert already resolved source archives into ``outdir``.

    Parameters
    ----------
    sources : Sequence[Path]
        Source archive files.
    outdir : Path
        Existing output directory.
    config : RepackConfig
        Validated run configuration.
    progress : ProgressSink, optional
        Receiver of progress notifications.

    Returns
    -------
    RunSummary
        Per-file results and failures.
    """
    from .application.pipeline import convert_archives as _impl

    return await _impl(sources, outdir, config, progress=progress)


def run(
    config: RepackConfig,
    inputs: PathSpecs,
    output: Path | None = None,
    *,
    progress: ProgressSink | None = None,
) -> RunSummary:
    """Resolve ``inputs`` and convert them into ``output``.

    Parameters
    ----------
    config : RepackConfig
        Validated run configuration.
    inputs : Iterable[str | os.PathLike[str]]
        Paths or glob patterns.
    output : Path, optional
        Output directory, the working directory when omitted.
    progress : ProgressSink, optional
        Receiver of progress notifications.

    Returns
    -------
    RunSummary
        Per-file results and failures.
    """
    from .application.pipeline import run as _impl

    return _impl(config, inputs, output, progress=progress)


__all__ = [
    "__version__",
    "build_config",
    "convert_archives",
    "run",
]
