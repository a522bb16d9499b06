"""Bounded-concurrency mapping over an ordered sequence."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def bounded_map(
    items: Sequence[T],
    mapper: Callable[[T, int], Awaitable[R]],
    concurrency: int = 5,
) -> List[R]:
    """Map ``items`` through ``mapper`` with at most ``concurrency`` calls in flight.

    Args:
        items: Inputs, processed in claim order.
        mapper: Async function receiving ``(item, index)``.
        concurrency: Maximum simultaneous mapper invocations.

    Returns:
        Results in input order, regardless of completion order.

    Raises:
        ValueError: If ``concurrency`` is lower than one.
        Exception: Whatever a mapper raised first. The remaining workers are
            cancelled and awaited before it propagates, so no mapper call
            starts or keeps running after this returns.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")
    pending = list(items)
    results: List[R] = [None] * len(pending)  # type: ignore[list-item]
    if not pending:
        return results

    # One cursor shared by all workers; claiming an index never suspends.
    cursor = iter(range(len(pending)))

    async def worker() -> None:
        for index in cursor:
            results[index] = await mapper(pending[index], index)

    tasks = [asyncio.ensure_future(worker()) for _ in range(min(concurrency, len(pending)))]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return results


__all__ = ["bounded_map"]
