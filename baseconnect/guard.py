"""
Single-flight helpers — one-time initialization and in-flight call sharing.

Depends on: (nothing — leaf module)
"""

import asyncio
from typing import Awaitable, Callable, Optional


class InitGuard:
    """Runs each keyed initializer at most once.

    Owned by the composition root and handed to whatever needs one-time setup,
    so re-creating a controller (or anything else) never repeats the work.
    Concurrent callers for the same key await the same task. A failed
    initializer leaves the key uninitialized so a later call can try again.
    """

    def __init__(self):
        self._done: set[str] = set()
        self._running: dict[str, asyncio.Task] = {}
        self.runs: dict[str, int] = {}

    def is_initialized(self, key: str) -> bool:
        return key in self._done

    async def ensure(self, key: str, initializer: Callable[[], Awaitable[None]]) -> bool:
        """Initialize `key` if needed. Returns True if this call ran the initializer."""
        if key in self._done:
            return False
        task = self._running.get(key)
        if task is not None:
            await asyncio.shield(task)
            return False

        self.runs[key] = self.runs.get(key, 0) + 1
        task = asyncio.ensure_future(initializer())
        self._running[key] = task
        # Bookkeeping follows the task, not the caller: a cancelled waiter
        # must not clear the in-flight marker.
        task.add_done_callback(lambda t: self._finished(key, t))
        await asyncio.shield(task)
        return True

    def _finished(self, key: str, task: asyncio.Task) -> None:
        if self._running.get(key) is task:
            del self._running[key]
        if not task.cancelled() and task.exception() is None:
            self._done.add(key)


class SingleFlight:
    """Shares one in-flight call between concurrent callers."""

    def __init__(self):
        self._task: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, factory: Callable[[], Awaitable]):
        """Start factory() unless a call is already running, then await that call's result."""
        if not self.in_flight:
            self._task = asyncio.ensure_future(factory())
        return await asyncio.shield(self._task)

    def forget(self) -> None:
        """Detach from the current call; the next run() starts a fresh one."""
        self._task = None
