"""
Tests for async_utils module.

Covers run_sync, run_sync_limited, gather_limited, and run_limited.
"""

import asyncio
import threading
import time

from zgw_vrijbrp_sync.core.async_utils import (
    gather_limited,
    run_limited,
    run_sync,
    run_sync_limited,
)


def _sync_add(a: int, b: int) -> int:
    """Simple sync function for testing."""
    return a + b


def _concurrency_tracker():
    """Callable factory recording the highest number of overlapping calls."""
    state = {"current": 0, "max": 0}
    lock = threading.Lock()

    def make(val):
        def _track():
            with lock:
                state["current"] += 1
                state["max"] = max(state["max"], state["current"])
            time.sleep(0.05)  # Hold for a bit so others overlap
            with lock:
                state["current"] -= 1
            return val

        return _track

    return make, state


async def test_run_sync_calls_function():
    """run_sync delegates to asyncio.to_thread with correct args."""
    result = await run_sync(_sync_add, 3, 4)
    assert result == 7


async def test_run_sync_passes_kwargs():
    """run_sync forwards keyword arguments."""

    def _kw_func(*, name: str) -> str:
        return f"hello {name}"

    result = await run_sync(_kw_func, name="world")
    assert result == "hello world"


async def test_run_sync_limited_uses_semaphore():
    semaphore = asyncio.Semaphore(1)
    result = await run_sync_limited(semaphore, _sync_add, 10, 20)
    assert result == 30
    assert not semaphore.locked()


async def test_gather_limited_keeps_order():
    results = await gather_limited([lambda i=i: i for i in range(5)], 3)
    assert results == [0, 1, 2, 3, 4]


async def test_gather_limited_empty_list():
    assert await gather_limited([], 4) == []


async def test_gather_limited_concurrency_bound():
    """At most max_parallel callables run at once."""
    make, state = _concurrency_tracker()

    results = await gather_limited([make(i) for i in range(6)], 2)

    assert results == [0, 1, 2, 3, 4, 5]
    assert state["max"] <= 2


def test_run_limited_sequential_stays_in_calling_thread():
    caller = threading.get_ident()
    threads = run_limited([threading.get_ident for _ in range(3)], 1)
    assert threads == [caller, caller, caller]


def test_run_limited_parallel():
    make, state = _concurrency_tracker()

    results = run_limited([make(i) for i in range(6)], 3)

    assert results == [0, 1, 2, 3, 4, 5]
    assert 1 < state["max"] <= 3
