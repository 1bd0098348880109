"""QTimer-backed countdown and deferred calls for the Qt event loop."""

from __future__ import annotations

from collections.abc import Callable

from PySide6.QtCore import QTimer

from quiz_runner.constants.quiz_constants import CLOCK_TICK_INTERVAL_MS
from quiz_runner.core.clock import Clock, ScheduledCall, Scheduler


class QtClock(Clock):
    """Countdown ticking once per ``tick_interval_ms`` on the Qt event loop."""

    def __init__(self, tick_interval_ms: int = CLOCK_TICK_INTERVAL_MS) -> None:
        super().__init__()
        self._timer = QTimer()
        self._timer.setInterval(tick_interval_ms)
        self._timer.timeout.connect(self._tick)

    def _start_ticking(self) -> None:
        self._timer.start()

    def _stop_ticking(self) -> None:
        self._timer.stop()


class _QtScheduledCall(ScheduledCall):
    def __init__(self, scheduler: QtScheduler, delay_ms: int, callback: Callable[[], None]) -> None:
        self._scheduler = scheduler
        self._callback = callback
        self._timer = QTimer()
        self._timer.setSingleShot(True)
        self._timer.setInterval(max(0, delay_ms))
        self._timer.timeout.connect(self._fire)

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> None:
        self._timer.stop()
        self._scheduler._forget(self)

    def _fire(self) -> None:
        self._scheduler._forget(self)
        self._callback()


class QtScheduler(Scheduler):
    """Single-shot QTimers; keeps each pending timer alive until it fires or is cancelled."""

    def __init__(self) -> None:
        self._pending: set[_QtScheduledCall] = set()

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ScheduledCall:
        call = _QtScheduledCall(self, delay_ms, callback)
        self._pending.add(call)
        call.start()
        return call

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def cancel_all(self) -> None:
        for call in list(self._pending):
            call.cancel()

    def _forget(self, call: _QtScheduledCall) -> None:
        self._pending.discard(call)
