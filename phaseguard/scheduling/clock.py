"""
Clock abstraction for timer scheduling.

The supervisor never touches a global timer table. It receives a Clock
and schedules through it: production code uses AsyncioClock, tests use
ManualClock to step virtual time deterministically.

Both clocks share the same turn model as the asyncio event loop. A
callback scheduled with ``call_soon`` runs after every callback that was
already ready when it was scheduled, and timers that fall due are queued
behind callbacks that were ready first.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from collections import deque
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class Cancellable(Protocol):
    """Handle returned by a Clock for a scheduled callback."""

    def cancel(self) -> None:
        """Prevent the callback from running. Safe to call repeatedly."""
        ...

    def cancelled(self) -> bool:
        """True once cancel() has been called."""
        ...


@runtime_checkable
class Clock(Protocol):
    """
    Scheduler used to arm phase deadlines.

    Delays are expressed in milliseconds to match delay configuration.
    """

    def call_later(self, delay_ms: float, callback: Callable[..., Any], *args: Any) -> Cancellable:
        """Run ``callback(*args)`` once ``delay_ms`` milliseconds have elapsed."""
        ...

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> Cancellable:
        """Run ``callback(*args)`` in the next scheduling turn."""
        ...

    def now_ms(self) -> float:
        """Current clock time in milliseconds."""
        ...


class AsyncioClock:
    """
    Clock backed by an asyncio event loop.

    Example:
        >>> async def main():
        ...     clock = AsyncioClock()
        ...     supervisor = TimeoutSupervisor(clock=clock)
        ...     cancel_all = supervisor.attach(request, {"request": 3000}, context)
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """
        Initialize the clock.

        Args:
            loop: Event loop to schedule on. When omitted, the running loop
                is looked up at each call.
        """
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The loop callbacks are scheduled on."""
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def call_later(
        self, delay_ms: float, callback: Callable[..., Any], *args: Any
    ) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay_ms, 0) / 1000.0, callback, *args)

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> asyncio.Handle:
        return self.loop.call_soon(callback, *args)

    def now_ms(self) -> float:
        return self.loop.time() * 1000.0


class ManualHandle:
    """Handle for a callback scheduled on a ManualClock."""

    __slots__ = ("when", "callback", "args", "_cancelled")

    def __init__(self, when: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def _run(self) -> None:
        self.callback(*self.args)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "pending"
        return f"<ManualHandle when={self.when} {state} {self.callback!r}>"


class ManualClock:
    """
    Deterministic virtual clock for tests.

    Time only moves when ``tick`` is called. Each scheduling turn first
    moves due timers onto the ready queue (earliest deadline first, then
    insertion order), then runs exactly the callbacks that were ready when
    the turn started.

    Attributes:
        created: Number of call_later invocations, for asserting that no
            timer was armed.

    Example:
        >>> clock = ManualClock()
        >>> fired = []
        >>> clock.call_later(10, fired.append, "deadline")
        >>> clock.tick(9)
        >>> fired
        []
        >>> clock.tick(1)
        >>> fired
        ['deadline']
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)
        self._timers: list[tuple[float, int, ManualHandle]] = []
        self._ready: deque[ManualHandle] = deque()
        self._sequence = itertools.count()
        self.created = 0

    def now_ms(self) -> float:
        return self._now

    def call_later(
        self, delay_ms: float, callback: Callable[..., Any], *args: Any
    ) -> ManualHandle:
        when = self._now + max(delay_ms, 0)
        handle = ManualHandle(when, callback, args)
        heapq.heappush(self._timers, (when, next(self._sequence), handle))
        self.created += 1
        return handle

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> ManualHandle:
        handle = ManualHandle(self._now, callback, args)
        self._ready.append(handle)
        return handle

    def pending(self) -> int:
        """Number of live timers and ready callbacks."""
        timers = sum(1 for _, _, handle in self._timers if not handle.cancelled())
        ready = sum(1 for handle in self._ready if not handle.cancelled())
        return timers + ready

    def pending_timers(self) -> list[ManualHandle]:
        """Live timers ordered by deadline."""
        return [handle for _, _, handle in sorted(self._timers) if not handle.cancelled()]

    def _collect_due(self) -> None:
        while self._timers and self._timers[0][0] <= self._now:
            _, _, handle = heapq.heappop(self._timers)
            if not handle.cancelled():
                self._ready.append(handle)

    def run_turn(self) -> int:
        """
        Run one scheduling turn at the current virtual time.

        Returns:
            Number of callbacks executed.
        """
        self._collect_due()
        executed = 0
        for _ in range(len(self._ready)):
            handle = self._ready.popleft()
            if handle.cancelled():
                continue
            handle._run()
            executed += 1
        return executed

    def _has_runnable(self) -> bool:
        if any(not handle.cancelled() for handle in self._ready):
            return True
        return any(
            when <= self._now and not handle.cancelled() for when, _, handle in self._timers
        )

    def run_until_idle(self) -> None:
        """Run turns until nothing is ready at the current virtual time."""
        while self._has_runnable():
            self.run_turn()

    def tick(self, ms: float = 0) -> None:
        """
        Advance virtual time by ``ms`` milliseconds.

        Timers fire in deadline order with time set to each deadline in
        turn, and everything they schedule with call_soon runs before time
        moves on.

        Raises:
            ValueError: If ``ms`` is negative.
        """
        if ms < 0:
            raise ValueError(f"Cannot move the clock backwards, got {ms}")
        target = self._now + ms
        self.run_until_idle()
        while True:
            live = [when for when, _, handle in self._timers if not handle.cancelled()]
            if not live or min(live) > target:
                break
            self._now = max(self._now, min(live))
            self.run_until_idle()
        self._now = target
        self.run_until_idle()
