"""Single-flight gates: run a call once and share its outcome with every concurrent caller.

:class:`SingleFlight` serves OS threads and :class:`AsyncSingleFlight`
serves asyncio tasks. Each instance guards at most one outstanding call.
The first caller while idle becomes the leader and runs the function;
callers arriving before it settles wait for the same result or exception.
Once settled the handle is cleared, so the next caller starts a new flight.
"""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Thread-safe single-flight gate backed by a :class:`concurrent.futures.Future`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._future: Optional[Future[T]] = None

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._future is not None

    def do(self, fn: Callable[[], T]) -> T:
        """Run *fn* unless a call is already in flight, then return the shared outcome.

        Raises:
            Exception: Whatever *fn* raised, re-raised in every caller.
        """
        with self._lock:
            future = self._future
            leader = future is None
            if future is None:
                future = self._future = Future()

        if not leader:
            return future.result()

        try:
            result = fn()
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._future = None


class AsyncSingleFlight(Generic[T]):
    """Single-flight gate for one event loop backed by a shared :class:`asyncio.Task`.

    Waiters await the task through :func:`asyncio.shield`: cancelling one
    waiter never cancels the shared call.
    """

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task[T]] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def do(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Await *fn* unless a call is already in flight, then return the shared outcome."""
        task = self._task
        if task is None or task.done():
            task = asyncio.ensure_future(fn())
            self._task = task
            task.add_done_callback(self._settled)
        return await asyncio.shield(task)

    def _settled(self, task: asyncio.Task[T]) -> None:
        if self._task is task:
            self._task = None
        # Mark the exception retrieved even when every waiter was cancelled.
        if not task.cancelled():
            task.exception()
