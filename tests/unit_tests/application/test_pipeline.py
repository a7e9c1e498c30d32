"""Unit tests for the two-level conversion pipeline using in-memory fakes."""

from __future__ import annotations

import asyncio
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from comic_repack.application.pipeline import convert_archives, convert_file
from comic_repack.application.results import TransformOutcome
from comic_repack.entries import Entry
from comic_repack.errors import ArchiveReadError, OutputExistsError
from comic_repack.formats import ArchiveType
from comic_repack.schemas import RepackConfig

pytestmark = pytest.mark.asyncio


class _Tracker:
    """Records how many files and entry tasks are in flight at once.

    An entry task counts from the start of its read until its append.
    Keys are archive stems, shared by a source and its output.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.files = 0
        self.peak_files = 0
        self.entries: dict[str, int] = {}
        self.peak_entries: dict[str, int] = {}
        self._started: dict[tuple[str, str], float] = {}
        self.spans: list[tuple[str, float, float]] = []

    def file_opened(self) -> None:
        with self._lock:
            self.files += 1
            self.peak_files = max(self.peak_files, self.files)

    def file_closed(self) -> None:
        with self._lock:
            self.files -= 1

    def entry_started(self, archive: str, name: str) -> None:
        with self._lock:
            count = self.entries.get(archive, 0) + 1
            self.entries[archive] = count
            self.peak_entries[archive] = max(self.peak_entries.get(archive, 0), count)
            self._started[archive, name.lower()] = time.monotonic()

    def entry_done(self, archive: str, name: str) -> None:
        with self._lock:
            self.entries[archive] -= 1
            started = self._started.pop((archive, name.lower()))
            self.spans.append((archive, started, time.monotonic()))


class _Reader:
    def __init__(self, path: Path, tracker: _Tracker, names: list[str]) -> None:
        self.path = path
        self.tracker = tracker
        self._names = names
        self.closed = False

    def names(self):
        yield from self._names

    def read(self, name: str) -> bytes:
        self.tracker.entry_started(self.path.stem, name)
        time.sleep(0.02)
        return b"" if name.endswith("empty.png") else name.encode()

    def close(self) -> None:
        self.closed = True
        self.tracker.file_closed()


class _Writer:
    def __init__(self, path: Path, tracker: _Tracker) -> None:
        self.path = path
        self.tracker = tracker
        self.appended: list[tuple[str, bytes]] = []
        self.closed = 0
        self.active = 0
        self.overlap = False

    def append(self, name: str, data: bytes) -> None:
        self.active += 1
        self.overlap = self.overlap or self.active > 1
        time.sleep(0.001)
        self.appended.append((name, data))
        self.active -= 1
        self.tracker.entry_done(self.path.stem, name)

    def close(self) -> os.stat_result:
        self.closed += 1
        if self.path.stem.startswith("unclosable"):
            raise OSError(f"No space left on device: '{self.path}'")
        return os.stat_result((0o644, 0, 0, 1, 0, 0, len(self.appended), 0, 0, 0))


class _Transformer:
    def transform(self, name: str, data: bytes) -> TransformOutcome:
        if "broken" in name:
            raise ValueError(f"cannot encode {name}")
        return TransformOutcome(name.upper(), data, "encoded")


class _Fixture:
    def __init__(self, pages: int = 12) -> None:
        self.tracker = _Tracker()
        self.readers: dict[Path, _Reader] = {}
        self.writers: dict[Path, _Writer] = {}
        self.pages = pages
        self.names: dict[Path, list[str]] = {}

    def reader_opener(self, path: Path):
        if path.name.startswith("missing"):
            raise ArchiveReadError(f"Source archive not found: {path}")
        self.tracker.file_opened()
        names = self.names.get(path, [f"p{i:02d}.png" for i in range(self.pages)])
        reader = _Reader(path, self.tracker, names)
        self.readers[path] = reader
        entries = [Entry(i, n) for i, n in enumerate(names)]
        return reader, entries, len(entries) + 1

    def writer_opener(self, path: Path, archive: ArchiveType, force: bool) -> _Writer:
        del archive
        if path.stem == "taken" and not force:
            raise OutputExistsError(f"Output file already exists {path}")
        writer = _Writer(path, self.tracker)
        self.writers[path] = writer
        return writer


class _Progress:
    def __init__(self) -> None:
        self.events: list[tuple[object, ...]] = []

    def files_total(self, total: int) -> None:
        self.events.append(("total", total))

    def file_started(self, source: Path, total: int, done: int) -> None:
        self.events.append(("started", source.name, total, done))

    def entry_finished(self, source: Path) -> None:
        self.events.append(("entry", source.name))

    def file_finished(self, source: Path, ok: bool) -> None:
        self.events.append(("finished", source.name, ok))


async def _convert(
    fixture: _Fixture,
    sources: list[Path],
    config: RepackConfig,
    tmp_path: Path,
    progress: _Progress | None = None,
):
    return await convert_archives(
        sources,
        tmp_path / "out",
        config,
        transformer=_Transformer(),
        progress=progress,
        reader_opener=fixture.reader_opener,
        writer_opener=fixture.writer_opener,
    )


def _peak_overlap(spans: list[tuple[float, float]]) -> int:
    return max(sum(1 for s, e in spans if s <= start < e) for start, _ in spans)


async def test_concurrency_bounds_follow_budget_split(tmp_path: Path) -> None:
    config = RepackConfig(image_format="png", jobs=10, file_jobs=2)
    assert config.entry_jobs == 5
    fixture = _Fixture(pages=15)
    sources = [Path(f"vol{i}.cbz") for i in range(4)]
    # Enough worker threads that the pipeline, not the pool, sets the bound.
    with ThreadPoolExecutor(max_workers=32) as pool:
        asyncio.get_running_loop().set_default_executor(pool)
        summary = await _convert(fixture, sources, config, tmp_path)

    assert summary.ok
    assert len(summary.results) == 4
    tracker = fixture.tracker
    assert tracker.peak_files == 2
    assert max(tracker.peak_entries.values()) == 5
    assert all(peak <= 5 for peak in tracker.peak_entries.values())

    # Read-to-append spans of each file agree with the counters.
    for source in sources:
        spans = [(s, e) for stem, s, e in tracker.spans if stem == source.stem]
        assert len(spans) == 15
        assert _peak_overlap(spans) <= 5
    everything = [(s, e) for _, s, e in tracker.spans]
    assert 5 < _peak_overlap(everything) <= 10


async def test_entries_are_all_written_once_and_serialized(tmp_path: Path) -> None:
    config = RepackConfig(image_format="png", jobs=8, file_jobs=1)
    fixture = _Fixture(pages=20)
    source = Path("book.cbz")

    summary = await _convert(fixture, [source], config, tmp_path)

    writer = fixture.writers[tmp_path / "out" / "book.cbz"]
    assert sorted(name for name, _ in writer.appended) == [f"P{i:02d}.PNG" for i in range(20)]
    assert not writer.overlap
    assert writer.closed == 1
    assert fixture.readers[source].closed
    result = summary.results[0]
    assert result.converted == 20
    assert result.failed == 0
    assert result.output_size == 20


async def test_entry_failures_are_isolated(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    config = RepackConfig(image_format="png", jobs=4)
    fixture = _Fixture()
    source = Path("mixed.cbz")
    fixture.names[source] = ["a.png", "broken.png", "empty.png", "b.png"]

    with caplog.at_level("ERROR", logger="comic_repack"):
        summary = await _convert(fixture, [source], config, tmp_path)

    writer = fixture.writers[tmp_path / "out" / "mixed.cbz"]
    assert sorted(name for name, _ in writer.appended) == ["A.PNG", "B.PNG"]
    assert writer.closed == 1
    result = summary.results[0]
    assert (result.converted, result.failed) == (2, 2)
    assert not summary.ok
    # The entry location is reported once.
    [empty_line] = [r.getMessage() for r in caplog.records if "empty.png" in r.getMessage()]
    assert empty_line == "mixed.cbz:empty.png: entry holds no data"


async def test_file_failures_are_isolated(tmp_path: Path) -> None:
    config = RepackConfig(image_format="png", jobs=4, file_jobs=2)
    fixture = _Fixture(pages=3)
    sources = [Path("missing.cbz"), Path("taken.cbz"), Path("good.cbz")]

    summary = await _convert(fixture, sources, config, tmp_path)

    assert [r.source_path for r in summary.results] == [Path("good.cbz")]
    failures = dict(summary.failures)
    assert isinstance(failures[Path("missing.cbz")], ArchiveReadError)
    assert isinstance(failures[Path("taken.cbz")], OutputExistsError)
    # The reader opened for the refused output is released again.
    assert fixture.readers[Path("taken.cbz")].closed


async def test_progress_notifications(tmp_path: Path) -> None:
    config = RepackConfig(image_format="png", jobs=2)
    fixture = _Fixture(pages=2)
    progress = _Progress()

    await _convert(fixture, [Path("one.cbz")], config, tmp_path, progress)

    assert progress.events[0] == ("total", 1)
    assert progress.events[1] == ("started", "one.cbz", 3, 1)
    assert progress.events.count(("entry", "one.cbz")) == 2
    assert progress.events[-1] == ("finished", "one.cbz", True)


async def test_convert_file_reports_sizes(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    source = tmp_path / "real.cbz"
    source.write_bytes(b"0123456789")
    config = RepackConfig(image_format="png", jobs=2)
    fixture = _Fixture(pages=1)

    with caplog.at_level("DEBUG", logger="comic_repack"):
        result = await convert_file(
            source,
            tmp_path / "out",
            config,
            transformer=_Transformer(),
            reader_opener=fixture.reader_opener,
            writer_opener=fixture.writer_opener,
        )

    assert result.output_path == tmp_path / "out" / "real.cbz"
    assert "Archived:" in caplog.text
    assert "Encoded: P00.PNG" in caplog.text


async def test_missing_source_size_keeps_result(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    source = tmp_path / "vanishing.cbz"
    source.write_bytes(b"0123456789")
    config = RepackConfig(image_format="png", jobs=2)
    fixture = _Fixture(pages=2)

    def open_then_remove(path: Path):
        opened = fixture.reader_opener(path)
        path.unlink()
        return opened

    with caplog.at_level("DEBUG", logger="comic_repack"):
        summary = await convert_archives(
            [source],
            tmp_path / "out",
            config,
            transformer=_Transformer(),
            reader_opener=open_then_remove,
            writer_opener=fixture.writer_opener,
        )

    assert summary.failures == []
    [result] = summary.results
    assert result.converted == 2
    assert "source size unavailable" in caplog.text


async def test_writer_close_failure_aborts_only_that_file(tmp_path: Path) -> None:
    config = RepackConfig(image_format="png", jobs=4, file_jobs=2)
    fixture = _Fixture(pages=3)
    sources = [Path("unclosable.cbz"), Path("healthy.cbz")]

    summary = await _convert(fixture, sources, config, tmp_path)

    [(failed_source, error)] = summary.failures
    assert failed_source == Path("unclosable.cbz")
    assert isinstance(error, OSError)
    assert fixture.writers[tmp_path / "out" / "unclosable.cbz"].closed == 1
    assert fixture.readers[Path("unclosable.cbz")].closed
    assert [r.source_path for r in summary.results] == [Path("healthy.cbz")]
    assert summary.results[0].converted == 3


async def test_dispatch_to_closed_pool_fails_entry(tmp_path: Path) -> None:
    pool = ThreadPoolExecutor(max_workers=1)
    pool.shutdown()
    config = RepackConfig(image_format="png", jobs=2)
    fixture = _Fixture(pages=2)

    summary = await convert_archives(
        [Path("book.cbz")],
        tmp_path / "out",
        config,
        transformer=_Transformer(),
        codec_pool=pool,
        reader_opener=fixture.reader_opener,
        writer_opener=fixture.writer_opener,
    )

    assert summary.results[0].failed == 2
    assert fixture.writers[tmp_path / "out" / "book.cbz"].closed == 1
