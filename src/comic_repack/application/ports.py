"""Application ports separating the pipeline from container and codec details."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

from comic_repack.application.results import TransformOutcome


class ArchiveSource(Protocol):
    """Opened source container, shared read-only by all entry tasks of a file."""

    path: Path

    def names(self) -> Iterator[str]:
        """Yield every entry name in enumeration order."""

    def read(self, name: str) -> bytes:
        """Return the raw bytes of one entry. Safe to call from many threads."""

    def close(self) -> None:
        """Release the underlying file."""


class ArchiveSink(Protocol):
    """Destination container. Callers serialize ``append`` calls."""

    path: Path

    def append(self, name: str, data: bytes) -> None:
        """Add one named entry."""

    def close(self) -> os.stat_result:
        """Finalize the container and return the resulting file's metadata."""


class EntryTransformer(Protocol):
    """Decide how one entry is carried into the destination container."""

    def transform(self, name: str, data: bytes) -> TransformOutcome:
        """Return the output name and bytes for an entry."""


class ProgressSink(Protocol):
    """Receives completion counts. Calls must return immediately."""

    def files_total(self, total: int) -> None:
        """Announce the number of source files."""

    def file_started(self, source: Path, total: int, done: int) -> None:
        """Announce a file with ``total`` entries of which ``done`` need no work."""

    def entry_finished(self, source: Path) -> None:
        """Count one processed entry of ``source``."""

    def file_finished(self, source: Path, ok: bool) -> None:
        """Count one finished file."""


class NullProgress:
    """Progress sink discarding every update."""

    def files_total(self, total: int) -> None:
        del total

    def file_started(self, source: Path, total: int, done: int) -> None:
        del source, total, done

    def entry_finished(self, source: Path) -> None:
        del source

    def file_finished(self, source: Path, ok: bool) -> None:
        del source, ok
