"""Cancellable delayed tasks for debounce and timeout timers.

`Scheduler` is the subset of the asyncio event loop API the signal fusion
code needs (`time()` and `call_later()`), so a running loop can be passed in
directly. `VirtualScheduler` implements the same contract over a manual clock
for deterministic tests.
"""

from __future__ import annotations

import heapq
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def time(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


@dataclass(eq=False)
class VirtualTimer:
    when: float
    callback: Callable[..., Any]
    args: tuple[Any, ...] = ()
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class VirtualScheduler:
    """Manual clock: timers only fire inside `advance()` / `advance_to()`."""

    now: float = 0.0
    _queue: list[tuple[float, int, VirtualTimer]] = field(default_factory=list)
    _seq: itertools.count = field(default_factory=itertools.count)

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> VirtualTimer:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        timer = VirtualTimer(when=self.now + delay, callback=callback, args=args)
        heapq.heappush(self._queue, (timer.when, next(self._seq), timer))
        return timer

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("seconds must be >= 0")
        self.advance_to(self.now + seconds)

    def advance_to(self, when: float) -> None:
        """Run due timers in deadline order, moving the clock to each deadline."""
        while self._queue and self._queue[0][0] <= when:
            deadline, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self.now = deadline
            timer.callback(*timer.args)
        self.now = max(self.now, when)

    def pending(self) -> int:
        return sum(1 for _, _, t in self._queue if not t.cancelled)
