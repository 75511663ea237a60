"""Sliding-window rate limiting for endpoint lifecycle notifications.

A burst of calls against a deprecated endpoint must not flood the user with
identical notices. :class:`SlidingWindowLimiter` admits at most
``max_events`` emissions in any trailing ``window`` seconds; anything over
the ceiling is dropped, not queued. :class:`Notifier` applies the limiter
and hands admitted signals to a sink after a short presentation delay.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Callable, Optional

from bearerkit.endpoints import STATUS_LABELS, EndpointSignal, describe_signal
from bearerkit.models import NotificationConfig
from bearerkit.output import get_output

Sink = Callable[[EndpointSignal], None]
Scheduler = Callable[[float, Callable[[], None]], Any]


class SlidingWindowLimiter:
    """Admit at most *max_events* events per trailing *window* seconds.

    Timestamps older than the window are evicted lazily on every check, so
    the retained count never exceeds the ceiling.

    Args:
        max_events: Ceiling per window.
        window: Window length in seconds.
        clock: Monotonic time source in seconds.

    Raises:
        ValueError: If *max_events* or *window* is not positive.
    """

    def __init__(
        self,
        max_events: int = 3,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_events <= 0:
            raise ValueError("max_events must be positive")
        if window <= 0:
            raise ValueError("window must be positive")
        self.max_events = max_events
        self.window = window
        self._clock = clock
        self._events: deque[float] = deque()
        self._lock = threading.Lock()

    def allow(self) -> bool:
        """Record an event and return ``True``, or return ``False`` when over the ceiling."""
        with self._lock:
            now = self._clock()
            self._evict(now)
            if len(self._events) >= self.max_events:
                return False
            self._events.append(now)
            return True

    def remaining(self) -> int:
        with self._lock:
            self._evict(self._clock())
            return self.max_events - len(self._events)

    def reset(self) -> None:
        with self._lock:
            self._events.clear()

    def _evict(self, now: float) -> None:
        cutoff = now - self.window
        while self._events and self._events[0] <= cutoff:
            self._events.popleft()


def default_sink(signal: EndpointSignal) -> None:
    """Print *signal* to stderr through the global output manager."""
    get_output().notify(STATUS_LABELS[signal.status], describe_signal(signal))


def timer_scheduler(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Run *callback* after *delay* seconds on a daemon timer thread."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class Notifier:
    """Rate-limited delivery of :class:`~bearerkit.endpoints.EndpointSignal`.

    Args:
        limiter: Admission gate; ``None`` admits everything.
        sink: Receives admitted signals. Defaults to :func:`default_sink`.
        delay: Seconds between admission and delivery. ``0`` delivers inline.
        scheduler: ``scheduler(delay, callback)`` used for delayed delivery.
            Defaults to :func:`timer_scheduler`; the async client passes the
            event loop's ``call_later``.
        enabled: When ``False`` every signal is dropped.
    """

    def __init__(
        self,
        limiter: Optional[SlidingWindowLimiter] = None,
        sink: Optional[Sink] = None,
        delay: float = 0.1,
        scheduler: Optional[Scheduler] = None,
        enabled: bool = True,
    ) -> None:
        self._limiter = limiter
        self._sink = sink or default_sink
        self._delay = delay
        self._scheduler = scheduler or timer_scheduler
        self._enabled = enabled

    @classmethod
    def from_config(
        cls,
        config: NotificationConfig,
        sink: Optional[Sink] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> Notifier:
        return cls(
            limiter=SlidingWindowLimiter(config.max_per_window, config.window_seconds, clock),
            sink=sink,
            delay=config.presentation_delay,
            scheduler=scheduler,
            enabled=config.enabled,
        )

    @property
    def limiter(self) -> Optional[SlidingWindowLimiter]:
        return self._limiter

    def submit(self, signal: EndpointSignal) -> bool:
        """Deliver *signal* if the limiter admits it.

        Returns:
            ``True`` if the signal was admitted, ``False`` if it was dropped.
        """
        if not self._enabled:
            return False
        if self._limiter is not None and not self._limiter.allow():
            get_output().debug(f"Notification dropped (rate limited): {signal.path}")
            return False
        if self._delay <= 0:
            self._sink(signal)
        else:
            self._scheduler(self._delay, lambda: self._sink(signal))
        return True
