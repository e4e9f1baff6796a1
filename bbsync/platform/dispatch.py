"""Bounded-concurrency fan-out / fan-in.

``dispatch`` runs one coroutine per item with at most ``limit`` in flight
and always returns one result per item. A worker that raises does not
cancel its siblings; its exception is turned into a result by ``on_error``.

Usage:
    results = await dispatch(
        repos,
        sync_one,
        limit=3,
        on_error=lambda repo, exc: failed(repo, str(exc)),
    )
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

__all__ = ["dispatch"]


async def dispatch[T, R](
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    limit: int,
    on_error: Callable[[T, Exception], R],
    on_done: Callable[[T, R], None] | None = None,
) -> list[R]:
    """Run ``worker`` over ``items`` with at most ``limit`` running at once.

    Args:
        items: Units of work
        worker: Coroutine function processing one item
        limit: Maximum number of workers in flight (must be >= 1)
        on_error: Builds the result for an item whose worker raised
        on_done: Called after each item completes (progress ticking)

    Returns:
        One result per item, in submission order
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    semaphore = asyncio.Semaphore(limit)

    async def run_one(item: T) -> R:
        async with semaphore:
            try:
                result = await worker(item)
            except Exception as exc:  # noqa: BLE001
                result = on_error(item, exc)
        if on_done is not None:
            on_done(item, result)
        return result

    return list(await asyncio.gather(*(run_one(item) for item in items)))
