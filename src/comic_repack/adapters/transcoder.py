"""Per-entry transform decision policy backed by Pillow."""

from __future__ import annotations

import io
import logging
from pathlib import PurePosixPath

from PIL import Image

from comic_repack.application.results import TransformOutcome
from comic_repack.errors import CodecError
from comic_repack.formats import (
    EFFICIENT_SOURCE_FORMATS,
    ImageFormat,
    readable_format_from_extension,
)
from comic_repack.infrastructure.logs import TRACE
from comic_repack.schemas import RepackConfig

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = frozenset(
    {"txt", "md", "xml", "html", "svg", "info", "nfo", "json", "yml", "yaml"}
)

_DECODE_ERRORS = (Image.DecompressionBombError, OSError, ValueError, KeyError)


def _decode(data: bytes, source_format: str | None) -> Image.Image:
    formats = [source_format] if source_format else None
    image = Image.open(io.BytesIO(data), formats=formats)
    image.load()
    return image


def _prepare_mode(image: Image.Image, target: str) -> Image.Image:
    has_alpha = "A" in image.getbands() or "transparency" in image.info
    if target == "JPEG":
        if image.mode not in ("1", "L", "RGB", "CMYK"):
            return image.convert("RGB")
    elif target in ("WEBP", "AVIF"):
        if image.mode not in ("RGB", "RGBA"):
            return image.convert("RGBA" if has_alpha else "RGB")
    elif target == "PNG":
        if image.mode == "CMYK":
            return image.convert("RGB")
    return image


class ImageTranscoder:
    """Decide between copying an entry through and re-encoding it.

    Precedence, first match wins:

    1. text and markup entries are copied unchanged;
    2. entries whose extension no decoder claims are decoded by content
       sniffing, and copied unchanged when that fails too;
    3. images already in the target format are copied;
    4. images already in an efficient modern format are copied;
    5. anything else is decoded and re-encoded into the target format, and
       renamed to carry the target extension.

    Branches 2 to 4 are logged as warnings so skipped entries can be
    audited.
    """

    def __init__(self, config: RepackConfig) -> None:
        self.config = config

    @property
    def target(self) -> ImageFormat:
        return self.config.image_format

    def transform(self, name: str, data: bytes) -> TransformOutcome:
        uri = PurePosixPath(name)
        filename = uri.name
        ext = uri.suffix.lower().lstrip(".")
        source_format = readable_format_from_extension(ext) if ext else None

        if ext in TEXT_EXTENSIONS:
            logger.debug("'%s' Seems to text, so just copying as-is.", name)
            return TransformOutcome(name, data, "copied_text")

        image: Image.Image | None = None
        if source_format is None:
            try:
                image = _decode(data, None)
            except _DECODE_ERRORS:
                logger.warning("Unable to decode as image: %s, so just copying as-is.", name)
                return TransformOutcome(name, data, "copied_undecodable")
            source_format = image.format

        if source_format == self.target.name:
            logger.warning("SKIP with reason: same format: %s (%s)", source_format, name)
            return TransformOutcome(filename, data, "skipped_same_format")

        if source_format in EFFICIENT_SOURCE_FORMATS:
            logger.warning(
                "SKIP with reason: src is already good format: %s (%s)", source_format, name
            )
            return TransformOutcome(filename, data, "skipped_efficient_source")

        if image is None:
            try:
                image = _decode(data, source_format)
            except _DECODE_ERRORS:
                logger.warning("Unable to decode as image: %s, so just copying as-is.", name)
                return TransformOutcome(name, data, "copied_undecodable")

        logger.log(
            TRACE,
            "original image: %s, len: %d (%s, %s)",
            name,
            len(data),
            source_format,
            image.mode,
        )
        output = self.encode(image)
        out_name = str(PurePosixPath(filename).with_suffix(f".{self.target.ext}"))
        logger.log(TRACE, "transcoded image: %s, len: %d (%s)", out_name, len(output), self.target.name)
        return TransformOutcome(out_name, output, "encoded")

    def encode(self, image: Image.Image) -> bytes:
        """Encode ``image`` into the configured target format.

        Raises
        ------
        CodecError
            If the encoder rejects the image or its parameters.
        """
        target = self.target.name
        params: dict[str, object] = {}
        if target == "AVIF":
            params = {"quality": self.config.quality, "speed": self.config.speed}
        elif target == "WEBP":
            params = {"lossless": True} if self.config.lossless else {"quality": self.config.quality}
        elif target == "PNG":
            params = {"optimize": True, "compress_level": 9}
        elif target == "JPEG":
            params = {"quality": self.config.quality}

        buffer = io.BytesIO()
        try:
            _prepare_mode(image, target).save(buffer, format=target, **params)
        except (OSError, ValueError, KeyError) as exc:
            raise CodecError(f"Cannot encode image as {target}: {exc}") from exc
        return buffer.getvalue()
