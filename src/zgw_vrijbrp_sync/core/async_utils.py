"""Async utilities for fanning blocking candidate work out to threads."""

import asyncio
import logging
from typing import Any, Callable, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    semaphore: asyncio.Semaphore,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run a synchronous function in a thread, bounded by *semaphore*."""
    async with semaphore:
        return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    funcs: Sequence[Callable[[], T]],
    max_parallel: int,
) -> list[T]:
    """Run blocking callables concurrently with at most *max_parallel* in flight.

    Results are returned in input order. Exceptions propagate from the
    first failure, so callables are expected to contain their own errors.

    Args:
        funcs: Zero-argument callables.
        max_parallel: Upper bound on concurrently running callables.

    Returns:
        List of results in the same order as *funcs*.
    """
    semaphore = asyncio.Semaphore(max_parallel)
    logger.debug(
        "Fanning out %d tasks: max_parallel=%d", len(funcs), max_parallel
    )
    return list(
        await asyncio.gather(
            *(run_sync_limited(semaphore, func) for func in funcs)
        )
    )


def run_limited(
    funcs: Sequence[Callable[[], T]], max_parallel: int
) -> list[T]:
    """Blocking entry point for ``gather_limited``.

    Runs sequentially in the calling thread when ``max_parallel`` is 1.
    """
    if max_parallel <= 1:
        return [func() for func in funcs]
    return asyncio.run(gather_limited(funcs, max_parallel))
