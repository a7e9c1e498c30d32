"""Use-cases driving the two-level archive conversion pipeline.

The outer stage runs at most ``config.file_jobs`` files at once; inside each
file at most ``config.entry_jobs`` entries are read, transformed and written
concurrently. Entries and files complete in whatever order their work
finishes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, ThreadPoolExecutor
from pathlib import Path
from typing import TypeAlias

from comic_repack.adapters.readers import read_archive
from comic_repack.adapters.transcoder import ImageTranscoder
from comic_repack.adapters.writers import open_writer
from comic_repack.application.ports import (
    ArchiveSink,
    ArchiveSource,
    EntryTransformer,
    NullProgress,
    ProgressSink,
)
from comic_repack.application.results import (
    ConversionResult,
    FileJob,
    RunSummary,
    TransformOutcome,
)
from comic_repack.application.scheduler import bounded_unordered
from comic_repack.entries import Entry
from comic_repack.errors import DispatchError, EmptyEntryError
from comic_repack.formats import ArchiveType
from comic_repack.infrastructure.logs import TRACE
from comic_repack.paths import output_archive_path, prepare_output_dir, resolve_inputs
from comic_repack.schemas import RepackConfig
from comic_repack.types import PathSpecs

logger = logging.getLogger(__name__)

ReaderOpener: TypeAlias = Callable[[Path], tuple[ArchiveSource, list[Entry], int]]
WriterOpener: TypeAlias = Callable[[Path, ArchiveType, bool], ArchiveSink]


def _ratio(new: int, old: int) -> float:
    return (new / old) * 100.0 if old else 0.0


async def open_job(
    source: Path,
    outdir: Path,
    config: RepackConfig,
    *,
    reader_opener: ReaderOpener = read_archive,
    writer_opener: WriterOpener = open_writer,
) -> FileJob:
    """Open the reader and writer for one source archive.

    The reader is released again when the writer cannot be opened.
    """
    reader, entries, total = await asyncio.to_thread(reader_opener, source)
    output = output_archive_path(source, outdir, config.archive)
    try:
        writer = await asyncio.to_thread(writer_opener, output, config.archive, config.force)
    except BaseException:
        reader.close()
        raise
    return FileJob(
        source_path=source,
        reader=reader,
        entries=entries,
        total_entries=total,
        writer=writer,
        output_path=output,
    )


async def convert_entry(
    job: FileJob,
    entry: Entry,
    transformer: EntryTransformer,
    write_lock: asyncio.Lock,
    codec_pool: Executor | None = None,
) -> TransformOutcome:
    """Read, transform and append one entry.

    Raises
    ------
    EmptyEntryError
        If the entry holds no data.
    DispatchError
        If the codec pool refuses the work.
    """
    name = entry.uri
    logger.debug("reading '%s'", name)
    data = await asyncio.to_thread(job.reader.read, name)
    if not data:
        raise EmptyEntryError("entry holds no data")

    logger.debug("transcoding '%s'", name)
    loop = asyncio.get_running_loop()
    try:
        pending = loop.run_in_executor(codec_pool, transformer.transform, name, data)
    except RuntimeError as exc:
        raise DispatchError(f"Cannot dispatch '{job.source_path}:{name}': {exc}") from exc
    outcome = await pending
    logger.debug(
        "Encoded: %s, new size: %db vs. %db ≈ %.2f%%",
        outcome.output_name,
        len(outcome.output_bytes),
        len(data),
        _ratio(len(outcome.output_bytes), len(data)),
    )

    async with write_lock:
        await asyncio.to_thread(job.writer.append, outcome.output_name, outcome.output_bytes)
    return outcome


async def convert_job(
    job: FileJob,
    config: RepackConfig,
    *,
    transformer: EntryTransformer,
    codec_pool: Executor | None = None,
    progress: ProgressSink | None = None,
) -> ConversionResult:
    """Run the entry stage of one file and finalize its output container.

    Entry failures are logged and skipped. The writer is closed once the
    stage drains, however many entries failed; the reader is always closed.
    """
    progress = progress or NullProgress()
    jobs = config.entry_jobs
    logger.log(TRACE, "jobs per archive: %d", jobs)
    write_lock = asyncio.Lock()
    progress.file_started(
        job.source_path, job.total_entries, job.total_entries - len(job.entries)
    )

    async def _convert(entry: Entry) -> TransformOutcome:
        return await convert_entry(job, entry, transformer, write_lock, codec_pool)

    converted = 0
    failed = 0
    try:
        async for entry, outcome, error in bounded_unordered(job.entries, jobs, _convert):
            progress.entry_finished(job.source_path)
            if error is None:
                converted += 1
                logger.info("Finished: %s", outcome.output_name)
            else:
                failed += 1
                logger.error("%s:%s: %s", job.source_path, entry.uri, error)
        metadata = await asyncio.to_thread(job.writer.close)
    finally:
        job.reader.close()

    return ConversionResult(
        source_path=job.source_path,
        output_path=job.output_path,
        output_metadata=metadata,
        converted=converted,
        failed=failed,
    )


async def convert_file(
    source: Path,
    outdir: Path,
    config: RepackConfig,
    *,
    transformer: EntryTransformer,
    codec_pool: Executor | None = None,
    progress: ProgressSink | None = None,
    reader_opener: ReaderOpener = read_archive,
    writer_opener: WriterOpener = open_writer,
) -> ConversionResult:
    """Convert one source archive into its destination container."""
    job = await open_job(
        source,
        outdir,
        config,
        reader_opener=reader_opener,
        writer_opener=writer_opener,
    )
    result = await convert_job(
        job,
        config,
        transformer=transformer,
        codec_pool=codec_pool,
        progress=progress,
    )
    try:
        src_size = (await asyncio.to_thread(source.stat)).st_size
    except OSError as exc:
        logger.debug("Archived: %s, source size unavailable: %s", source, exc)
        return result
    logger.debug(
        "Archived: %s, new size: %db vs. %db ≈ %.2f%%",
        source,
        result.output_size,
        src_size,
        _ratio(result.output_size, src_size),
    )
    return result


async def convert_archives(
    sources: Sequence[Path],
    outdir: Path,
    config: RepackConfig,
    *,
    transformer: EntryTransformer | None = None,
    codec_pool: Executor | None = None,
    progress: ProgressSink | None = None,
    reader_opener: ReaderOpener = read_archive,
    writer_opener: WriterOpener = open_writer,
) -> RunSummary:
    """Convert many archives, at most ``config.file_jobs`` at a time.

    A failing file is logged and recorded in the summary; the others carry
    on.
    """
    progress = progress or NullProgress()
    transformer = transformer or ImageTranscoder(config)
    progress.files_total(len(sources))

    async def _convert(source: Path) -> ConversionResult:
        return await convert_file(
            source,
            outdir,
            config,
            transformer=transformer,
            codec_pool=codec_pool,
            progress=progress,
            reader_opener=reader_opener,
            writer_opener=writer_opener,
        )

    summary = RunSummary()
    async for source, result, error in bounded_unordered(sources, config.file_jobs, _convert):
        if error is None:
            summary.results.append(result)
            logger.info("Finished: %s", source)
        else:
            summary.failures.append((source, error))
            logger.error("%s: %s", source, error)
        progress.file_finished(source, error is None)

    logger.info(
        "Complete: %d of %d archives converted", len(summary.results), len(sources)
    )
    return summary


def run(
    config: RepackConfig,
    inputs: PathSpecs,
    output: Path | None = None,
    *,
    progress: ProgressSink | None = None,
) -> RunSummary:
    """Resolve inputs, prepare the output directory and convert everything.

    Codec work runs on a dedicated thread pool sized by ``config.jobs``.

    Raises
    ------
    OutputDirError
        If the output directory cannot be created.
    """
    logger.debug("preparing input paths")
    sources = resolve_inputs(inputs)
    logger.debug("preparing output path")
    outdir = prepare_output_dir(output)
    with ThreadPoolExecutor(max_workers=config.jobs, thread_name_prefix="codec") as pool:
        return asyncio.run(
            convert_archives(sources, outdir, config, codec_pool=pool, progress=progress)
        )
