"""Exception hierarchy shared by the repack pipeline and its adapters."""

from __future__ import annotations


class RepackError(Exception):
    """Base class for all comic-repack failures."""

    exit_code = 1


class ConfigError(RepackError):
    """Invalid run configuration."""

    exit_code = 2


class OutputDirError(RepackError):
    """Output directory cannot be established. Fatal for the whole run."""


class ArchiveReadError(RepackError):
    """Source container cannot be opened or read."""


class EmptyEntryError(ArchiveReadError):
    """Entry read from a source container produced no data."""


class ArchiveWriteError(RepackError):
    """Destination container cannot be written."""


class ZipWriteError(ArchiveWriteError):
    """Failure while writing a zip-based container."""


class SevenZipWriteError(ArchiveWriteError):
    """Failure while writing a 7z-based container."""


class OutputExistsError(ArchiveWriteError):
    """Destination exists and overwriting was not requested."""


class CodecError(RepackError):
    """Image encoding failed."""


class DispatchError(RepackError):
    """Work could not be dispatched to a worker pool."""
