from __future__ import annotations

"""Timer factories for speech grace periods.

The session only needs ``start(delay_s, fn) -> handle`` and
``handle.cancel()``. Real sessions use daemon ``threading.Timer``s; replay
and tests use ``ManualTimerFactory`` driven by an explicit clock.
"""

import threading
from typing import Callable, List, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class ThreadingTimerFactory:
    def start(self, delay_s: float, fn: Callable[[], None]) -> TimerHandle:
        t = threading.Timer(delay_s, fn)
        t.daemon = True
        t.start()
        return t


class _ManualTimer:
    def __init__(self, deadline: float, fn: Callable[[], None]) -> None:
        self.deadline = deadline
        self.fn = fn
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimerFactory:
    """Timers that fire only when the clock is advanced past their deadline."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = float(now)
        self._timers: List[_ManualTimer] = []

    def start(self, delay_s: float, fn: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self.now + float(delay_s), fn)
        self._timers.append(timer)
        return timer

    def pending(self) -> List[_ManualTimer]:
        return [t for t in self._timers if not t.cancelled and not t.fired]

    def advance_to(self, t: float) -> int:
        """Move the clock forward, firing due timers in deadline order."""
        fired = 0
        while True:
            due = [x for x in self.pending() if x.deadline <= t]
            if not due:
                break
            timer = min(due, key=lambda x: x.deadline)
            self.now = max(self.now, timer.deadline)
            timer.fired = True
            timer.fn()
            fired += 1
        self.now = max(self.now, float(t))
        return fired

    def advance(self, dt: float) -> int:
        return self.advance_to(self.now + dt)

    def fire_all(self) -> int:
        fired = 0
        while self.pending():
            fired += self.advance_to(max(t.deadline for t in self.pending()))
        return fired
