#!/usr/bin/env python3
"""
comic_repack.cli.cli

Typer-based CLI for re-encoding the pages of comic book archives.

Examples
--------
Convert every cbz below ``library/`` to AVIF pages in cbz containers:

    comic-repack 'library/**/*.cbz' -o converted

Convert two archives at once into 7z containers with WebP pages:

    comic-repack a.cbz b.cbr -f webp -a cb7 -p 2 -o out
"""

from __future__ import annotations

import traceback
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from comic_repack import __version__
from comic_repack.errors import RepackError
from comic_repack.formats import ArchiveType, parse_image_format
from comic_repack.infrastructure.logs import configure_logging
from comic_repack.infrastructure.progress import RichProgress

app = typer.Typer(
    name="comic-repack",
    help="Re-encode the images inside comic book archives.",
    no_args_is_help=True,
    add_completion=False,
)


def _print_conversion_error(console: Console, exc: Exception, debug: bool) -> int:
    """Print a user-friendly error and pick the process exit code.

    Parameters
    ----------
    console : Console
        Console the message is rendered on.
    exc : Exception
        Exception raised by the run.
    debug : bool
        Whether to include traceback details.

    Returns
    -------
    int
        Process exit code.
    """
    console.print(f"[red]✗ {type(exc).__name__}:[/red] {escape(str(exc))}")
    if debug:
        console.print("\n[dim]Traceback:[/dim]")
        console.print(
            escape("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
        )
    code = getattr(exc, "exit_code", None)
    if isinstance(code, int) and code > 0:
        return code
    return 1


def _format_callback(value: str) -> str:
    try:
        parse_image_format(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return value


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"comic-repack {__version__}")
        raise typer.Exit()


@app.command()
def main(
    inputs: list[str] = typer.Argument(
        ..., help="Archive files or glob patterns (quote patterns to keep the shell off them)."
    ),
    output: Path | None = typer.Option(
        None,
        "-o",
        "--output",
        file_okay=False,
        help="Output directory. Defaults to the current directory.",
    ),
    image_format: str = typer.Option(
        "avif",
        "-f",
        "--format",
        callback=_format_callback,
        help="Target image format, e.g. avif, webp, png, jpeg.",
    ),
    quality: int = typer.Option(100, "-q", "--quality", min=1, max=100, help="Encoder quality."),
    lossless: bool = typer.Option(
        False, "-l", "--lossless", help="Encode losslessly where the format supports it."
    ),
    speed: int = typer.Option(
        3, "-s", "--speed", min=1, max=10, help="Encoder speed, 1 is slowest and smallest."
    ),
    jobs: int | None = typer.Option(
        None,
        "-j",
        "--jobs",
        min=1,
        help="Total worker budget. Defaults to the CPU count minus one.",
    ),
    jobs_fs: int = typer.Option(
        1, "-p", "--jobs-fs", min=1, help="Archives converted at the same time."
    ),
    archive: ArchiveType = typer.Option(
        ArchiveType.CBZ, "-a", "--archive", help="Output container type."
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing output archives."),
    verbose: int = typer.Option(
        0, "-v", "--verbose", count=True, help="Increase log verbosity (repeatable)."
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Print the version and exit.",
    ),
) -> None:
    """Convert comic archives, re-encoding their pages into one image format.

    Per-archive and per-page failures are logged and skipped; the command
    still exits successfully once every archive has been attempted.
    """
    del version
    console = Console(stderr=True)
    configure_logging(verbose, console)
    debug = verbose >= 2

    settings: dict[str, object] = {
        "image_format": image_format,
        "quality": quality,
        "lossless": lossless,
        "speed": speed,
        "file_jobs": jobs_fs,
        "archive": archive,
        "force": force,
    }
    if jobs is not None:
        settings["jobs"] = jobs

    try:
        from comic_repack.application import run
        from comic_repack.schemas import build_config

        config = build_config(**settings)
        with RichProgress(console) as progress:
            summary = run(config, inputs, output, progress=progress)
    except RepackError as exc:
        raise typer.Exit(code=_print_conversion_error(console, exc, debug))
    except Exception as exc:
        raise typer.Exit(code=_print_conversion_error(console, exc, debug))

    attempted = len(summary.results) + len(summary.failures)
    for source, error in summary.failures:
        console.print(f"[yellow]! {escape(str(source))}:[/yellow] {escape(str(error))}")
    typer.echo(f"Converted {len(summary.results)} of {attempted} archives")


if __name__ == "__main__":
    app()
