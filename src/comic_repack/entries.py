"""Container entries, noise filtering and wrapping root-directory detection."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import PurePosixPath

from comic_repack.infrastructure.logs import TRACE

logger = logging.getLogger(__name__)

ARTIFACT_FILES = frozenset({"Thumbs.db", ".DS_Store", "desktop.ini"})
ARTIFACT_DIRS = frozenset({"__MACOSX"})


@dataclass(frozen=True, order=True)
class Entry:
    """Named entry of a container.

    Parameters
    ----------
    index : int
        Position in the container's own enumeration order.
    uri : str
        Logical path of the entry inside the container.
    """

    index: int
    uri: str


def _segments(name: str) -> list[str]:
    return [part for part in name.replace("\\", "/").split("/") if part]


def is_noise(name: str) -> bool:
    """Return whether an entry name carries no payload worth converting.

    Directory markers, OS artifacts (thumbnail caches, desktop metadata and
    anything under their directories) and hidden dotfiles are noise.
    """
    if not name or name.endswith(("/", "\\")):
        return True
    segments = _segments(name)
    if not segments:
        return True
    last = segments[-1]
    if last in ARTIFACT_FILES:
        return True
    if any(segment in ARTIFACT_DIRS for segment in segments):
        return True
    return len(last) > 1 and last.startswith(".")


def filter_entries(entries: Iterable[Entry]) -> Iterator[Entry]:
    """Yield entries that are not noise, preserving order."""
    for entry in entries:
        if is_noise(entry.uri):
            logger.log(TRACE, "outfiltered inner file: %s", entry.uri)
            continue
        yield entry


class RootState(Enum):
    NO_ROOT_SEEN = auto()
    CANDIDATE_SEEN = auto()
    ROOT_CONFIRMED = auto()


class RootDetector:
    """Single-pass detector for one redundant wrapping directory.

    The first path component without an extension becomes a candidate; seeing
    the same component again confirms it as root. From then on every entry
    named exactly like the root is dropped and no further inspection happens.

    A wrapping directory that shows up as a first component only once is
    never detected. Enumeration order comes from the container and is not
    guaranteed to be sorted, so a root marker listed first may be confirmed
    late or not at all.
    """

    def __init__(self) -> None:
        self.state = RootState.NO_ROOT_SEEN
        self.name: str | None = None

    @property
    def root(self) -> str | None:
        return self.name if self.state is RootState.ROOT_CONFIRMED else None

    def keep(self, uri: str) -> bool:
        """Feed one entry name and return whether it stays in the working set."""
        if self.state is RootState.ROOT_CONFIRMED:
            return uri != self.name

        segments = _segments(uri)
        if not segments:
            return False
        first = segments[0]

        if not PurePosixPath(first).suffix:
            if self.state is RootState.CANDIDATE_SEEN and first == self.name:
                self.state = RootState.ROOT_CONFIRMED
                logger.debug("found root: %s", first)
            else:
                self.state = RootState.CANDIDATE_SEEN
                self.name = first
                logger.debug("found possible: %s", first)

        return uri != self.root


def remove_root_entry(entries: Iterable[Entry]) -> Iterator[Entry]:
    """Drop entries naming the detected wrapping root directory."""
    detector = RootDetector()
    for entry in entries:
        if detector.keep(entry.uri):
            yield entry
