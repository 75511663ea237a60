"""Bounded exponential backoff for transient transport failures.

Only :class:`~bearerkit.exceptions.TransportError` (network failures and
timeouts) is retried. A received HTTP status, whatever it is, is returned to
the caller on the first attempt: ``4xx`` and ``5xx`` are outcomes, not
transport faults, and ``401`` belongs to the refresh coordinator.

The delay before retry *n* (zero-based) is ``base_delay * 2 ** n``, giving
1 s, 2 s, 4 s with the defaults. After ``max_retries`` retries the last
failure propagates unchanged.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

from bearerkit.exceptions import TransportError
from bearerkit.models import RequestConfig
from bearerkit.output import get_output

T = TypeVar("T")


class _PolicyBase:
    def __init__(self, max_retries: int = 3, base_delay: float = 1.0) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt *attempt* (zero-based)."""
        return self.base_delay * (2 ** attempt)

    def delays(self) -> list[float]:
        """The full backoff schedule, e.g. ``[1.0, 2.0, 4.0]``."""
        return [self.delay_for(attempt) for attempt in range(self.max_retries)]

    def _should_retry(self, exc: TransportError, attempt: int) -> bool:
        if attempt >= self.max_retries:
            get_output().debug(
                f"Giving up after {attempt + 1} attempt(s): {exc}"
            )
            return False
        get_output().debug(
            f"{exc}, retrying in {self.delay_for(attempt)}s "
            f"(attempt {attempt + 1}/{self.max_retries})"
        )
        return True


class RetryPolicy(_PolicyBase):
    """Blocking retry loop.

    Args:
        max_retries: Retries after the first attempt.
        base_delay: Delay before the first retry; doubles each time.
        sleep: Injectable sleep function.

    Example::

        policy = RetryPolicy(max_retries=3)
        response = policy.run(lambda attempt: executor.execute(descriptor))
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(max_retries, base_delay)
        self._sleep = sleep

    @classmethod
    def from_config(
        cls, config: RequestConfig, sleep: Callable[[float], None] = time.sleep
    ) -> RetryPolicy:
        return cls(config.max_retries, config.retry_base_delay, sleep=sleep)

    def run(self, operation: Callable[[int], T]) -> T:
        """Call ``operation(attempt)`` until it succeeds or retries run out.

        Raises:
            TransportError: The last failure, once retries are exhausted.
        """
        attempt = 0
        while True:
            try:
                return operation(attempt)
            except TransportError as exc:
                if not self._should_retry(exc, attempt):
                    raise
                self._sleep(self.delay_for(attempt))
                attempt += 1


class AsyncRetryPolicy(_PolicyBase):
    """Non-blocking retry loop; *sleep* defaults to :func:`asyncio.sleep`."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(max_retries, base_delay)
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: RequestConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> AsyncRetryPolicy:
        return cls(config.max_retries, config.retry_base_delay, sleep=sleep)

    async def run(self, operation: Callable[[int], Awaitable[T]]) -> T:
        """Await ``operation(attempt)`` until it succeeds or retries run out."""
        attempt = 0
        while True:
            try:
                return await operation(attempt)
            except TransportError as exc:
                if not self._should_retry(exc, attempt):
                    raise
                await self._sleep(self.delay_for(attempt))
                attempt += 1
