"""Input resolution and output path mapping."""

from __future__ import annotations

import glob
import logging
from pathlib import Path, PurePath

from comic_repack.errors import OutputDirError
from comic_repack.formats import ArchiveType
from comic_repack.types import PathSpecs

logger = logging.getLogger(__name__)


def unglob(pattern: str) -> list[Path]:
    """Expand a glob pattern into the matching paths."""
    return [Path(match) for match in glob.glob(pattern, recursive=True)]


def resolve_inputs(specs: PathSpecs) -> list[Path]:
    """Turn user supplied paths and glob patterns into source files.

    Existing paths are taken as-is, anything else is expanded as a glob
    pattern. Patterns without matches are reported and ignored. The result
    is sorted and deduplicated, so the user's order is not preserved.

    Parameters
    ----------
    specs : Iterable[str | os.PathLike[str]]
        Paths or glob patterns.

    Returns
    -------
    list[Path]
        Existing regular files, each listed once.
    """
    candidates: list[Path] = []
    for spec in specs:
        path = Path(spec)
        if path.exists():
            candidates.append(path)
            continue
        matches = unglob(str(spec))
        if not matches:
            logger.warning("Path or glob pattern '%s' is wrong and will be ignored", spec)
        candidates.extend(matches)

    files: set[Path] = set()
    for path in candidates:
        if path.is_file():
            files.add(path)
        else:
            logger.warning("Skipping '%s': not a regular file", path)
    return sorted(files)


def sanitize_path(path: PurePath) -> PurePath:
    """Strip components that could escape the directory a path is joined to."""
    if path.is_absolute():
        parts = path.parts[1:]
    else:
        parts = tuple(part for part in path.parts if part not in ("..", "."))
    return PurePath(*parts)


def output_archive_path(source: PurePath, outdir: Path, archive: ArchiveType) -> Path:
    """Compute where the converted archive for ``source`` is written.

    Absolute sources keep only their file name (or their parent's name when
    there is none); relative sources keep their relative layout without any
    parent-directory traversal. Either way the result stays inside
    ``outdir``.
    """
    source = PurePath(source)
    if source.is_absolute():
        name = source.name or source.parent.name
        subpath = PurePath(name) if name else PurePath("archive")
    else:
        subpath = sanitize_path(source)
        if not subpath.parts:
            subpath = PurePath("archive")
    return outdir / subpath.with_suffix(f".{archive.ext}")


def prepare_output_dir(output: Path | None) -> Path:
    """Create the output directory, defaulting to the working directory.

    Raises
    ------
    OutputDirError
        If the directory cannot be created.
    """
    if output is None:
        # Can coincide with the input location; callers avoid in-place collisions.
        return Path.cwd()
    try:
        output.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputDirError(f"Cannot create output directory {output}: {exc}") from exc
    return output
