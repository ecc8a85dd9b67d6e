"""Bounded worker pool over a shared work queue."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from rulesync.config import clamp_concurrency

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> list[R]:
    """Run ``worker`` over ``items`` with at most ``concurrency`` in flight.

    Workers pull the next index from a shared cursor, so a fast worker takes
    more items than a slow one. Results are returned in input order. Workers
    are expected to handle their own errors; an escaping exception propagates.
    """
    if not items:
        return []
    results: list[R | None] = [None] * len(items)
    cursor = 0

    async def drain() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            results[index] = await worker(items[index])

    workers = min(clamp_concurrency(concurrency), len(items))
    await asyncio.gather(*(drain() for _ in range(workers)))
    return results  # type: ignore[return-value]
