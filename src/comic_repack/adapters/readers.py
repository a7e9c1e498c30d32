"""Source container readers."""

from __future__ import annotations

import logging
import tarfile
import threading
import zipfile
from collections.abc import Iterator
from pathlib import Path
from tempfile import TemporaryDirectory

import py7zr
import rarfile

from comic_repack.application.ports import ArchiveSource
from comic_repack.entries import Entry, filter_entries, remove_root_entry
from comic_repack.errors import ArchiveReadError
from comic_repack.infrastructure.logs import TRACE

logger = logging.getLogger(__name__)


def _dir_name(name: str) -> str:
    return name if name.endswith("/") else f"{name}/"


class ZipArchiveReader:
    """Zip-family reader (``.cbz``, ``.zip``).

    ``zipfile`` guards its shared file handle, so entries can be read from
    several threads at once.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        try:
            self._zip = zipfile.ZipFile(path)
        except (zipfile.BadZipFile, OSError) as exc:
            raise ArchiveReadError(f"Cannot open zip archive {path}: {exc}") from exc

    def names(self) -> Iterator[str]:
        yield from self._zip.namelist()

    def read(self, name: str) -> bytes:
        try:
            return self._zip.read(name)
        except (zipfile.BadZipFile, KeyError, OSError) as exc:
            raise ArchiveReadError(f"Cannot read '{self.path}:{name}': {exc}") from exc

    def close(self) -> None:
        self._zip.close()


class SevenZipArchiveReader:
    """7z-family reader (``.cb7``, ``.7z``).

    Solid archives only decompress sequentially, so the whole payload is
    unpacked once at open time and later reads are plain look-ups.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._names: list[str] = []
        self._data: dict[str, bytes] = {}
        try:
            with py7zr.SevenZipFile(path, mode="r") as archive:
                infos = archive.list()
                with TemporaryDirectory(prefix="comic-repack-") as tmp:
                    archive.extractall(path=tmp)
                    for info in infos:
                        if info.is_directory:
                            self._names.append(_dir_name(info.filename))
                            continue
                        self._names.append(info.filename)
                        member = Path(tmp) / info.filename
                        self._data[info.filename] = member.read_bytes() if member.is_file() else b""
        except ArchiveReadError:
            raise
        except Exception as exc:
            raise ArchiveReadError(f"Cannot open 7z archive {path}: {exc}") from exc

    def names(self) -> Iterator[str]:
        yield from self._names

    def read(self, name: str) -> bytes:
        try:
            return self._data[name]
        except KeyError as exc:
            raise ArchiveReadError(f"No entry '{self.path}:{name}'") from exc

    def close(self) -> None:
        self._data.clear()


class RarArchiveReader:
    """RAR-family reader (``.cbr``, ``.rar``). Needs an ``unrar`` backend."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        try:
            self._rar = rarfile.RarFile(path)
        except (rarfile.Error, OSError) as exc:
            raise ArchiveReadError(f"Cannot open rar archive {path}: {exc}") from exc

    def names(self) -> Iterator[str]:
        for info in self._rar.infolist():
            yield _dir_name(info.filename) if info.is_dir() else info.filename

    def read(self, name: str) -> bytes:
        with self._lock:
            try:
                return self._rar.read(name)
            except (rarfile.Error, KeyError, OSError) as exc:
                raise ArchiveReadError(f"Cannot read '{self.path}:{name}': {exc}") from exc

    def close(self) -> None:
        self._rar.close()


class TarArchiveReader:
    """Tar-family reader (``.cbt``, ``.tar`` and compressed variants)."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        try:
            self._tar = tarfile.open(path)
        except (tarfile.TarError, OSError) as exc:
            raise ArchiveReadError(f"Cannot open tar archive {path}: {exc}") from exc

    def names(self) -> Iterator[str]:
        for member in self._tar.getmembers():
            yield _dir_name(member.name) if member.isdir() else member.name

    def read(self, name: str) -> bytes:
        with self._lock:
            try:
                handle = self._tar.extractfile(name)
                return handle.read() if handle is not None else b""
            except (tarfile.TarError, KeyError, OSError) as exc:
                raise ArchiveReadError(f"Cannot read '{self.path}:{name}': {exc}") from exc

    def close(self) -> None:
        self._tar.close()


def open_archive(path: Path) -> ArchiveSource:
    """Open a source container, choosing the reader from the file's content.

    Raises
    ------
    ArchiveReadError
        If the file is missing or is not a supported container.
    """
    if not path.is_file():
        raise ArchiveReadError(f"Source archive not found: {path}")
    if zipfile.is_zipfile(path):
        return ZipArchiveReader(path)
    if py7zr.is_7zfile(path):
        return SevenZipArchiveReader(path)
    if rarfile.is_rarfile(path):
        return RarArchiveReader(path)
    if tarfile.is_tarfile(path):
        return TarArchiveReader(path)
    raise ArchiveReadError(f"Unsupported container format: {path}")


def read_archive(path: Path) -> tuple[ArchiveSource, list[Entry], int]:
    """Open a container and compute its working set of entries.

    Returns
    -------
    tuple[ArchiveSource, list[Entry], int]
        The opened reader, the entries left after noise filtering and root
        removal (in enumeration order), and the number of names enumerated
        before any filtering.
    """
    logger.debug("opening input: '%s'", path)
    reader = open_archive(path)
    try:
        names = [Entry(index, uri) for index, uri in enumerate(reader.names())]
    except ArchiveReadError:
        reader.close()
        raise
    except Exception as exc:
        reader.close()
        raise ArchiveReadError(f"Cannot list entries of {path}: {exc}") from exc

    logger.log(TRACE, "filtering inner files")
    total = len(names)
    entries = list(remove_root_entry(filter_entries(names)))
    logger.debug("total: %d, outfiltered: %d", total, total - len(entries))
    return reader, entries, total
