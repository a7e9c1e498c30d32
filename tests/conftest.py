"""Shared pytest configuration, marker assignment and archive fixtures."""

from __future__ import annotations

import io
import logging
import zipfile
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import TypeAlias

import pytest
from PIL import Image

from comic_repack.infrastructure.logs import PACKAGE_LOGGER
from comic_repack.schemas import RepackConfig

ImageFactory: TypeAlias = Callable[..., bytes]
ZipFactory: TypeAlias = Callable[..., Path]


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Attach suite markers based on test file path."""
    del config
    for item in items:
        parts = set(Path(str(item.fspath)).parts)
        if "e2e_tests" in parts:
            item.add_marker(pytest.mark.e2e)
        elif "integration_tests" in parts:
            item.add_marker(pytest.mark.integration)
        elif "unit_tests" in parts:
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def image_bytes() -> ImageFactory:
    """Build a small encoded image."""

    def _make(fmt: str = "PNG", size: tuple[int, int] = (8, 6), mode: str = "RGB") -> bytes:
        buffer = io.BytesIO()
        Image.new(mode, size, color=(200, 30, 90) if mode == "RGB" else 128).save(
            buffer, format=fmt
        )
        return buffer.getvalue()

    return _make


@pytest.fixture
def make_zip(tmp_path: Path) -> ZipFactory:
    """Write a zip container whose entries are given as name to bytes."""

    def _make(entries: Mapping[str, bytes], name: str = "book.cbz") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(path, "w") as archive:
            for entry_name, data in entries.items():
                archive.writestr(entry_name, data)
        return path

    return _make


@pytest.fixture
def webp_config() -> RepackConfig:
    return RepackConfig(image_format="webp", quality=80, jobs=4)


@pytest.fixture(autouse=True)
def _restore_package_logger() -> Iterator[None]:
    """Undo handler changes made by ``configure_logging`` during a test."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    root_logger = logging.getLogger()
    level, propagate, root_level = package_logger.level, package_logger.propagate, root_logger.level
    yield
    for target in (package_logger, root_logger):
        for handler in list(target.handlers):
            if handler.get_name() == "comic-repack":
                target.removeHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = propagate
    root_logger.setLevel(root_level)
