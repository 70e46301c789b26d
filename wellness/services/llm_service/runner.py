"""Bridge from synchronous request handlers to the async LLM clients.

Async HTTP clients pool connections on the event loop that opened them,
so every LLM call in the process runs on one long-lived loop owned by a
daemon thread. Flask worker threads submit coroutines and block on the
result.
"""
import asyncio
import logging
import threading
from typing import Any, Coroutine, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AsyncRunner:
    """Runs coroutines on a dedicated background event loop."""

    def __init__(self, name: str = "llm-event-loop"):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The background loop, started on first use."""
        with self._lock:
            if self._loop is None or self._loop.is_closed():
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._loop.run_forever,
                    name=self.name,
                    daemon=True,
                )
                self._thread.start()
                logger.info("ASYNC_RUNNER_STARTED", extra={"thread_name": self.name})
            return self._loop

    def run(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """Run coro on the background loop and return its result.

        Exceptions raised by coro propagate to the caller.
        """
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def close(self) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = None
            self._thread = None

        if loop is None:
            return

        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join()
        loop.close()
        logger.info("ASYNC_RUNNER_STOPPED", extra={"thread_name": self.name})


_runner_instance: Optional[AsyncRunner] = None


def get_async_runner() -> AsyncRunner:
    """Get or create the process-wide runner."""
    global _runner_instance

    if _runner_instance is None:
        _runner_instance = AsyncRunner()

    return _runner_instance
