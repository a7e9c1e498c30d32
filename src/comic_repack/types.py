"""Shared type aliases for repack modules."""

from __future__ import annotations

from collections.abc import Iterable
from os import PathLike
from pathlib import Path
from typing import Literal, TypeAlias

PathSpec: TypeAlias = str | PathLike[str]
PathSpecs: TypeAlias = Iterable[PathSpec]
TransformAction: TypeAlias = Literal[
    "copied_text",
    "copied_undecodable",
    "skipped_same_format",
    "skipped_efficient_source",
    "encoded",
]
FileFailure: TypeAlias = tuple[Path, BaseException]
