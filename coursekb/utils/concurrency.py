"""Shared concurrency primitives for batched vector store writes.

Three helpers are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with every awaitable wrapped in
   a semaphore acquire/release, so at most N run at once.

2. **with_timeout** -- awaits a coroutine under ``asyncio.wait_for`` and
   converts the timeout into a labelled :class:`TimeoutError` that names the
   operation that overran.

3. **split_batches** -- slices a sequence into consecutive fixed-size
   batches, the unit of work for the ingestion service.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Sequence, TypeVar

import structlog

from coursekb.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently under *semaphore*.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables execute at once.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def with_timeout(coro: Awaitable[_T], timeout: float, label: str) -> _T:
    """Await *coro*, raising ``TimeoutError`` naming *label* after *timeout* seconds."""
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError as exc:
        _logger.warning("operation_timeout", operation=label, timeout_s=timeout)
        raise TimeoutError(f"{label} timed out after {timeout:g}s") from exc


def split_batches(items: Sequence[_T], batch_size: int) -> list[list[_T]]:
    """Split *items* into consecutive batches of at most *batch_size*."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]
