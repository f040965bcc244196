"""Tests for the background event loop used by the dashboard."""

import asyncio
import threading

import pytest

from expense_tracker.background import BackgroundLoop
from expense_tracker.ledger import OwnerLocks


@pytest.fixture
def background_loop():
    loop = BackgroundLoop()
    yield loop
    loop.stop()


def _run_in_threads(background_loop, make_coro, count):
    results, errors = [None] * count, []

    def call(index):
        try:
            results[index] = background_loop.run(make_coro(index), timeout=5)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=call, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results, errors


class TestBackgroundLoop:
    """Tests for running coroutines from several threads on one loop."""

    def test_returns_result(self, background_loop):
        """Test that the coroutine's value comes back to the caller."""
        assert background_loop.run(asyncio.sleep(0, result="done")) == "done"
        assert background_loop.is_running

    def test_concurrent_callers(self, background_loop):
        """Test that overlapping calls from session threads all complete."""
        results, errors = _run_in_threads(
            background_loop,
            lambda i: asyncio.sleep(0.2, result=i),
            count=4,
        )
        assert errors == []
        assert results == [0, 1, 2, 3]

    def test_exception_propagates(self, background_loop):
        """Test that errors raised by the coroutine reach the caller."""
        async def failing():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            background_loop.run(failing())

    def test_owner_lock_shared_across_threads(self, background_loop):
        """Test that one owner lock serializes work submitted from several threads."""
        locks = OwnerLocks()
        trace = []

        async def worker(index):
            async with locks.hold("alice"):
                trace.append(("in", index))
                await asyncio.sleep(0.05)
                trace.append(("out", index))

        _, errors = _run_in_threads(background_loop, worker, count=3)

        assert errors == []
        for position in range(0, len(trace), 2):
            assert trace[position][0] == "in"
            assert trace[position + 1] == ("out", trace[position][1])

    def test_stop_is_idempotent(self):
        """Test that stopping twice is harmless."""
        loop = BackgroundLoop()
        loop.stop()
        loop.stop()
        assert not loop.is_running


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
