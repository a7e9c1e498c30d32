"""Bounded-concurrency primitives used by the pipeline stages."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


def entry_budget(jobs: int, file_jobs: int) -> int:
    """Split the global worker budget across concurrently processed files.

    Static floor division, never below one. A file with fewer entries than
    its share leaves the remaining slots idle.
    """
    return max(jobs // max(file_jobs, 1), 1)


async def bounded_unordered(
    items: Iterable[T],
    limit: int,
    fn: Callable[[T], Awaitable[R]],
) -> AsyncIterator[tuple[T, R | None, BaseException | None]]:
    """Run ``fn`` over ``items`` with at most ``limit`` calls in flight.

    Items are pulled lazily as slots free up. Outcomes are yielded in
    completion order as ``(item, result, error)``; exactly one of ``result``
    and ``error`` is meaningful. A failing call never cancels its siblings.
    """
    limit = max(limit, 1)
    source = iter(items)
    pending: dict[asyncio.Task[R], T] = {}

    def _fill() -> None:
        while len(pending) < limit:
            try:
                item = next(source)
            except StopIteration:
                return
            pending[asyncio.ensure_future(fn(item))] = item

    _fill()
    while pending:
        done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            item = pending.pop(task)
            error = task.exception()
            if error is None:
                yield item, task.result(), None
            else:
                yield item, None, error
        _fill()
