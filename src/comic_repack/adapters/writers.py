"""Destination container writers.

The set of writers is closed: one variant per container family, selected once
per file from :class:`~comic_repack.formats.ArchiveType`.
"""

from __future__ import annotations

import logging
import os
import zipfile
from pathlib import Path
from typing import BinaryIO, TypeAlias

import py7zr

from comic_repack.errors import (
    ArchiveWriteError,
    OutputExistsError,
    SevenZipWriteError,
    ZipWriteError,
)
from comic_repack.formats import ArchiveType

logger = logging.getLogger(__name__)

SEVEN_ZIP_FILTERS = [{"id": py7zr.FILTER_LZMA2, "preset": 9}]


def open_output_file(path: Path, force: bool) -> BinaryIO:
    """Open ``path`` exclusively for writing.

    Parent directories are created as needed. An existing file is truncated
    only when ``force`` is set.

    Raises
    ------
    OutputExistsError
        If the file exists and ``force`` is not set.
    """
    logger.debug("opening output: '%s'", path)
    exists = path.exists()
    if exists and not force:
        raise OutputExistsError(f"Output file already exists {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        return path.open("wb" if exists else "xb")
    except FileExistsError as exc:
        raise OutputExistsError(f"Output file already exists {path}") from exc


def _finalize(handle: BinaryIO, path: Path) -> os.stat_result:
    if not handle.closed:
        handle.flush()
        os.fsync(handle.fileno())
        handle.close()
    return path.stat()


class _WriterState:
    """Guards the open → append* → close lifecycle."""

    path: Path
    _closed: bool = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise ArchiveWriteError(f"Output archive already closed: {self.path}")


class ZipArchiveWriter(_WriterState):
    """Deflate-compressed zip container (``.cbz``, ``.zip``)."""

    def __init__(self, path: Path, handle: BinaryIO) -> None:
        self.path = path
        self._handle = handle
        self._zip = zipfile.ZipFile(
            handle, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
        )

    @classmethod
    def open(cls, path: Path, force: bool) -> ZipArchiveWriter:
        return cls(path, open_output_file(path, force))

    def append(self, name: str, data: bytes) -> None:
        self._ensure_open()
        logger.debug("writing '%s' to output archive", name)
        try:
            self._zip.writestr(name, data)
        except (zipfile.LargeZipFile, ValueError, OSError) as exc:
            raise ZipWriteError(f"Cannot write '{name}' to {self.path}: {exc}") from exc

    def close(self) -> os.stat_result:
        self._ensure_open()
        self._closed = True
        try:
            self._zip.close()
            return _finalize(self._handle, self.path)
        except (ValueError, OSError) as exc:
            raise ZipWriteError(f"Cannot finalize {self.path}: {exc}") from exc
        finally:
            if not self._handle.closed:
                self._handle.close()


class SevenZipArchiveWriter(_WriterState):
    """LZMA2-compressed 7z container (``.cb7``, ``.7z``)."""

    def __init__(self, path: Path, handle: BinaryIO) -> None:
        self.path = path
        self._handle = handle
        try:
            self._archive = py7zr.SevenZipFile(handle, mode="w", filters=SEVEN_ZIP_FILTERS)
        except Exception as exc:
            handle.close()
            raise SevenZipWriteError(f"Cannot create 7z archive {path}: {exc}") from exc

    @classmethod
    def open(cls, path: Path, force: bool) -> SevenZipArchiveWriter:
        return cls(path, open_output_file(path, force))

    def append(self, name: str, data: bytes) -> None:
        self._ensure_open()
        logger.debug("writing '%s' to output archive", name)
        try:
            self._archive.writestr(data, name)
        except Exception as exc:
            raise SevenZipWriteError(f"Cannot write '{name}' to {self.path}: {exc}") from exc

    def close(self) -> os.stat_result:
        self._ensure_open()
        self._closed = True
        try:
            self._archive.close()
            return _finalize(self._handle, self.path)
        except Exception as exc:
            raise SevenZipWriteError(f"Cannot finalize {self.path}: {exc}") from exc
        finally:
            if not self._handle.closed:
                self._handle.close()


ArchiveWriter: TypeAlias = ZipArchiveWriter | SevenZipArchiveWriter


def open_writer(path: Path, archive: ArchiveType, force: bool) -> ArchiveWriter:
    """Open the writer variant matching ``archive``."""
    match archive:
        case ArchiveType.CBZ | ArchiveType.ZIP:
            return ZipArchiveWriter.open(path, force)
        case ArchiveType.CB7 | ArchiveType.SEVEN_ZIP:
            return SevenZipArchiveWriter.open(path, force)
    raise ArchiveWriteError(f"Unsupported archive type: {archive}")
