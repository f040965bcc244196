"""
Background Event Loop

The dashboard runs every session's script in its own thread, while the
ledger's locks and the Redis client belong to a single event loop. That
loop runs forever in one daemon thread and every caller submits its
coroutines to it.
"""

import asyncio
import threading
from typing import Any, Coroutine, Optional

import structlog

logger = structlog.get_logger(__name__)


class BackgroundLoop:
    """An asyncio event loop running in a dedicated daemon thread."""

    def __init__(self, name: str = "expense-tracker-loop"):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()
        logger.info("background_loop_started", thread=name)

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and self.loop.is_running()

    def run(self, coro: Coroutine[Any, Any, Any], timeout: Optional[float] = None) -> Any:
        """
        Run a coroutine on the loop and wait for its result.

        Safe to call from any thread except the loop's own. Exceptions
        raised by the coroutine propagate to the caller.
        """
        if threading.current_thread() is self._thread:
            coro.close()
            raise RuntimeError("BackgroundLoop.run called from the loop thread")
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def stop(self) -> None:
        """Stop the loop and wait for its thread to finish."""
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join()
        self.loop.close()
        logger.info("background_loop_stopped", thread=self._thread.name)
