"""
World Clock — the world-time service and deterministic scheduler.

All decay, sentence and supervision arithmetic runs in world-minutes, not
wall-clock time. The host drives the clock by calling ``advance(minutes)``;
the clock then:
1. Crosses each whole world-minute boundary in order
2. Fires every scheduled call that has come due at that boundary
3. Delivers a minute tick to every subscriber

Because nothing here reads the wall clock, a test can replay any custody or
supervision flow exactly by advancing the same amounts.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
from typing import Callable

logger = logging.getLogger(__name__)

MINUTES_PER_HOUR = 60
MINUTES_PER_DAY = 1440


class ScheduledCall:
    """Handle for a callback registered with ``WorldClock.call_later``."""

    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class WorldClock:
    """
    World-time service with minute ticks and one-shot timers.

    Usage:
        clock = WorldClock()
        clock.subscribe_on_minute_tick(lambda now: ...)
        handle = clock.call_later(60, on_window_closed)
        clock.advance(90)
    """

    def __init__(self, start_minutes: float = 0.0) -> None:
        self._now = float(start_minutes)
        self._tick_subscribers: list[Callable[[float], None]] = []
        self._timers: list[tuple[float, int, ScheduledCall]] = []
        self._sequence = itertools.count()
        self._advancing = False

    def current_world_minutes(self) -> float:
        return self._now

    def subscribe_on_minute_tick(
        self, callback: Callable[[float], None]
    ) -> Callable[[], None]:
        """Register a per-minute callback. Returns an unsubscribe function."""
        self._tick_subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._tick_subscribers:
                self._tick_subscribers.remove(callback)

        return unsubscribe

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        """Run ``callback`` once the clock reaches ``now + delay``."""
        if delay < 0:
            raise ValueError(f"Delay must be non-negative, got {delay}")
        return self.call_at(self._now + delay, callback)

    def call_at(self, when: float, callback: Callable[[], None]) -> ScheduledCall:
        handle = ScheduledCall(when, callback)
        heapq.heappush(self._timers, (when, next(self._sequence), handle))
        return handle

    def pending_calls(self) -> int:
        return sum(1 for _, _, handle in self._timers if not handle.cancelled)

    def advance(self, minutes: float) -> None:
        """
        Move world time forward, firing timers and minute ticks in order.

        Args:
            minutes: World-minutes to advance. Fractions are carried; a tick
                is delivered only when a whole-minute boundary is crossed.
        """
        if minutes < 0:
            raise ValueError(f"Cannot advance by a negative amount: {minutes}")
        if self._advancing:
            raise RuntimeError("WorldClock.advance() is not re-entrant")

        self._advancing = True
        try:
            target = self._now + minutes
            boundary = math.floor(self._now) + 1
            while boundary <= target:
                self._now = float(boundary)
                self._run_due_calls()
                for subscriber in list(self._tick_subscribers):
                    subscriber(self._now)
                boundary += 1
            self._now = target
            self._run_due_calls()
        finally:
            self._advancing = False

    # ── Internal ──────────────────────────────────────────────

    def _run_due_calls(self) -> None:
        while self._timers and self._timers[0][0] <= self._now:
            _, _, handle = heapq.heappop(self._timers)
            if handle.cancelled:
                continue
            handle.callback()


def format_world_time(minutes: float) -> str:
    """Render world-minutes as ``"2d 3h 45m"``, ``"3h 45m"`` or ``"45m"``."""
    if minutes <= 0:
        return "0m"

    total = int(minutes)
    days, remainder = divmod(total, MINUTES_PER_DAY)
    hours, mins = divmod(remainder, MINUTES_PER_HOUR)

    if days > 0:
        return f"{days}d {hours}h {mins}m"
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"
