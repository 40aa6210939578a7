"""Last-write-wins throttle for bursty activity events.

Time is always passed in by the caller, so flush behaviour is deterministic
and tests never sleep.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class Throttle(Generic[T]):
    """Lets at most one value through per window; keeps the latest suppressed one.

    Usage:
        throttle = Throttle(window_seconds=2.0)
        if throttle.offer(event, now) is not None:
            handle(event)
        ...
        pending = throttle.flush(later)

    Args:
        window_seconds: Minimum spacing between emitted values.
    """

    def __init__(self, window_seconds: float) -> None:
        if window_seconds < 0:
            raise ValueError("window_seconds must be >= 0")
        self._window = window_seconds
        self._last_emit: Optional[float] = None
        self._pending: Optional[T] = None

    @property
    def pending(self) -> Optional[T]:
        """The latest suppressed value waiting for the next flush."""
        return self._pending

    def _window_open(self, now: float) -> bool:
        return self._last_emit is None or (now - self._last_emit) >= self._window

    def offer(self, value: T, now: float) -> Optional[T]:
        """Offer a value; returns it if emitted now, else stores it as pending."""
        if self._window_open(now):
            self._last_emit = now
            self._pending = None
            return value
        self._pending = value
        return None

    def flush(self, now: float) -> Optional[T]:
        """Emit the pending value if the window has elapsed."""
        if self._pending is None or not self._window_open(now):
            return None
        value = self._pending
        self._pending = None
        self._last_emit = now
        return value

    def reset(self) -> None:
        self._last_emit = None
        self._pending = None
