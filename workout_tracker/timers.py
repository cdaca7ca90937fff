"""Session clock and rest countdown driven by the Kivy clock.

Both timers count scheduler callbacks rather than wall-clock time: each
callback advances them by exactly one second. While paused no callbacks are
scheduled, so time spent in the background is never caught up.

Consumers bind to the dispatcher events (``on_tick``, ``on_halfway``,
``on_complete``). An exception raised by a handler is logged and the timer
keeps running.
"""

from __future__ import annotations

import logging

from kivy.clock import Clock
from kivy.event import EventDispatcher

TICK_INTERVAL = 1.0


class _ScheduledTimer(EventDispatcher):
    """Shared scheduling helpers for the timers in this module."""

    def __init__(self, clock=None, **kwargs):
        super().__init__(**kwargs)
        self._clock = clock or Clock
        self._event = None

    @property
    def ticking(self) -> bool:
        return self._event is not None

    def _schedule(self) -> None:
        if self._event is None:
            self._event = self._clock.schedule_interval(self._on_interval, TICK_INTERVAL)

    def _unschedule(self) -> None:
        if self._event is not None:
            self._event.cancel()
            self._event = None

    def _emit(self, name: str, *args) -> None:
        try:
            self.dispatch(name, *args)
        except Exception:
            logging.exception("%s handler for %s failed", name, type(self).__name__)

    def _on_interval(self, dt) -> None:
        raise NotImplementedError


class SessionClock(_ScheduledTimer):
    """Elapsed-time counter for an active workout.

    ``elapsed_seconds`` only grows while the clock is running and visible.
    """

    __events__ = ("on_tick",)

    def __init__(self, clock=None, elapsed_seconds: int = 0, **kwargs):
        super().__init__(clock=clock, **kwargs)
        self.elapsed_seconds = int(elapsed_seconds)
        self.running = False
        self.visible = True

    def start(self, elapsed_seconds: int | None = None) -> None:
        """Start counting, optionally from ``elapsed_seconds``."""
        if elapsed_seconds is not None:
            self.elapsed_seconds = int(elapsed_seconds)
        self.running = True
        if self.visible:
            self._schedule()

    def pause(self) -> None:
        """Suspend ticking because the app went to the background."""
        self.visible = False
        self._unschedule()

    def resume(self) -> None:
        """Continue ticking from the retained count."""
        self.visible = True
        if self.running:
            self._schedule()

    def stop(self) -> None:
        self.running = False
        self._unschedule()

    def reset(self) -> None:
        self.stop()
        self.elapsed_seconds = 0
        self.visible = True

    def _on_interval(self, dt) -> None:
        self.elapsed_seconds += 1
        self._emit("on_tick", self.elapsed_seconds)

    def on_tick(self, elapsed_seconds):
        pass


class RestTimer(_ScheduledTimer):
    """Countdown between sets.

    ``on_tick`` fires every second with the remaining time, ``on_halfway``
    once when half of the duration is left and ``on_complete`` exactly once
    when the countdown reaches zero. A finished timer stays inert until
    :meth:`start` is called again. Starting while running replaces the
    current countdown.
    """

    __events__ = ("on_tick", "on_halfway", "on_complete")

    def __init__(self, clock=None, **kwargs):
        super().__init__(clock=clock, **kwargs)
        self.duration = 0
        self.remaining = 0
        self._halfway_sent = False

    @property
    def active(self) -> bool:
        return self.ticking

    def start(self, duration: float) -> None:
        if duration < 0:
            raise ValueError("Rest duration must be >= 0")
        self.cancel()
        self.duration = int(round(duration))
        self.remaining = self.duration
        self._halfway_sent = False
        if self.remaining == 0:
            self._emit("on_complete")
            return
        self._schedule()

    def cancel(self) -> None:
        self._unschedule()
        self.remaining = 0

    def adjust(self, seconds: float) -> None:
        """Add (or with a negative value remove) time from a running timer."""
        if not self.active:
            return
        self.remaining = max(0, self.remaining + int(round(seconds)))
        self.duration = max(self.duration, self.remaining)
        if self.remaining * 2 > self.duration:
            self._halfway_sent = False
        if self.remaining == 0:
            self._finish()

    def _on_interval(self, dt) -> None:
        if self.remaining <= 0:
            self._finish()
            return
        self.remaining -= 1
        self._emit("on_tick", self.remaining)
        if not self._halfway_sent and self.remaining * 2 <= self.duration:
            self._halfway_sent = True
            self._emit("on_halfway", self.remaining)
        if self.remaining == 0:
            self._finish()

    def _finish(self) -> None:
        self._unschedule()
        self._emit("on_complete")

    def on_tick(self, remaining):
        pass

    def on_halfway(self, remaining):
        pass

    def on_complete(self):
        pass
