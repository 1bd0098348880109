"""Countdown and deferred-call primitives used by attempt sessions.

The session never touches a concrete timer. It talks to a ``Clock`` for the
attempt countdown and to a ``Scheduler`` for coalesced autosave and background
retries. Qt implementations live in ``quiz_runner.qt.clock``; tests drive
hand-cranked implementations instead of waiting on wall-clock time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

TickCallback = Callable[[int], None]
ExpireCallback = Callable[[], None]


class Clock(ABC):
    """Cancellable one-second countdown.

    Subclasses only provide the tick source; the countdown bookkeeping lives
    here so every implementation fires ``on_expire`` exactly once and never
    ticks after expiry or cancellation.
    """

    def __init__(self) -> None:
        self._remaining: int | None = None
        self._armed: bool = False
        self._on_tick: TickCallback | None = None
        self._on_expire: ExpireCallback | None = None

    def arm(self, seconds: int, on_expire: ExpireCallback, on_tick: TickCallback | None = None) -> None:
        if seconds < 0:
            raise ValueError("Countdown length must not be negative.")
        self.cancel()
        self._remaining = seconds
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._armed = True
        if seconds == 0:
            self._expire()
            return
        self._start_ticking()

    def cancel(self) -> None:
        if self._armed:
            self._stop_ticking()
        self._armed = False
        self._on_tick = None
        self._on_expire = None

    @property
    def is_armed(self) -> bool:
        return self._armed

    @property
    def remaining(self) -> int | None:
        """Seconds left on the last armed countdown, or None if never armed."""
        return self._remaining

    def _tick(self) -> None:
        if not self._armed or self._remaining is None:
            return
        self._remaining = max(0, self._remaining - 1)
        if self._on_tick is not None:
            self._on_tick(self._remaining)
        # on_tick may have cancelled us
        if self._armed and self._remaining == 0:
            self._expire()

    def _expire(self) -> None:
        callback = self._on_expire
        self._stop_ticking()
        self._armed = False
        self._on_tick = None
        self._on_expire = None
        if callback is not None:
            callback()

    @abstractmethod
    def _start_ticking(self) -> None:
        ...

    @abstractmethod
    def _stop_ticking(self) -> None:
        ...


class ScheduledCall(ABC):
    @abstractmethod
    def cancel(self) -> None:
        ...


class Scheduler(ABC):
    """Runs callbacks later on the same event loop as the session."""

    @abstractmethod
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledCall:
        ...
