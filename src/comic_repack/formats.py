"""Container and image format lookups."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from PIL import Image


class ArchiveType(StrEnum):
    """Output container types. The value doubles as the file extension."""

    CBZ = "cbz"
    ZIP = "zip"
    CB7 = "cb7"
    SEVEN_ZIP = "7z"

    @property
    def ext(self) -> str:
        return self.value


@dataclass(frozen=True)
class ImageFormat:
    """Target image format.

    Parameters
    ----------
    name : str
        Pillow format identifier (``"AVIF"``, ``"WEBP"``, ...).
    ext : str
        File extension written for encoded entries, without the dot.
    """

    name: str
    ext: str


_NAMED_FORMATS: dict[str, ImageFormat] = {
    "avif": ImageFormat("AVIF", "avif"),
    "webp": ImageFormat("WEBP", "webp"),
    "png": ImageFormat("PNG", "png"),
    "jpg": ImageFormat("JPEG", "jpeg"),
    "jpeg": ImageFormat("JPEG", "jpeg"),
    "gif": ImageFormat("GIF", "gif"),
    "bmp": ImageFormat("BMP", "bmp"),
    "tga": ImageFormat("TGA", "tga"),
    "qoi": ImageFormat("QOI", "qoi"),
    "tif": ImageFormat("TIFF", "tiff"),
    "tiff": ImageFormat("TIFF", "tiff"),
}

# Sources already encoded with a modern codec are never re-encoded.
EFFICIENT_SOURCE_FORMATS = frozenset({"WEBP", "AVIF"})


def _saveable_formats() -> set[str]:
    Image.init()
    return set(Image.SAVE)


def format_from_extension(ext: str) -> str | None:
    """Return the Pillow format registered for an extension, if any.

    Parameters
    ----------
    ext : str
        Extension with or without a leading dot, any case.
    """
    ext = ext.lower()
    if not ext.startswith("."):
        ext = f".{ext}"
    return Image.registered_extensions().get(ext)


def readable_format_from_extension(ext: str) -> str | None:
    """Like :func:`format_from_extension`, but only for formats Pillow can open.

    Save-only formats such as PDF map to ``None``.
    """
    name = format_from_extension(ext)
    if name is None or name not in Image.OPEN:
        return None
    return name


def parse_image_format(value: str) -> ImageFormat:
    """Resolve a user supplied format name or extension.

    Raises
    ------
    ValueError
        If the format is unknown or Pillow cannot write it.
    """
    key = value.strip().lower().lstrip(".")
    fmt = _NAMED_FORMATS.get(key)
    if fmt is None:
        name = format_from_extension(key) if key else None
        if name is not None:
            fmt = ImageFormat(name, key)
    if fmt is None or fmt.name not in _saveable_formats():
        raise ValueError(f"Unsupported image format: {value}")
    return fmt
