"""Terminal progress rendering."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)


class RichProgress:
    """Progress sink drawing one bar for files and one bar per open archive.

    Use as a context manager; log records rendered through :attr:`console`
    are printed above the bars.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)
        self._progress = Progress(
            TextColumn("[bold]{task.description}"),
            MofNCompleteColumn(),
            BarColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=self.console,
            transient=True,
        )
        self._files = self._progress.add_task("files:", total=0)
        self._entries: dict[Path, TaskID] = {}

    def __enter__(self) -> RichProgress:
        self._progress.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._progress.stop()

    def files_total(self, total: int) -> None:
        self._progress.update(self._files, total=total, completed=0)

    def file_started(self, source: Path, total: int, done: int) -> None:
        self._entries[source] = self._progress.add_task(
            source.name, total=total, completed=done
        )

    def entry_finished(self, source: Path) -> None:
        task = self._entries.get(source)
        if task is not None:
            self._progress.advance(task)

    def file_finished(self, source: Path, ok: bool) -> None:
        del ok
        task = self._entries.pop(source, None)
        if task is not None:
            self._progress.remove_task(task)
        self._progress.advance(self._files)
