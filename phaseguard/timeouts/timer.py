"""
Phase timers with deferred firing.

A PhaseTimer is a single deadline bound to a phase label. When the
deadline elapses the breach callback is not run inline: it is deferred
to the next scheduling turn. If the signal that ends the phase is already
queued for the same turn as the elapse, it runs first and cancels the
timer, so a phase that completed on time is never reported as breached.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from phaseguard.scheduling.clock import Cancellable, Clock

logger = logging.getLogger(__name__)

BreachCallback = Callable[[int, str], Any]


class TimerState(Enum):
    """Lifecycle states of a phase timer. FIRED and CANCELED are terminal."""

    PENDING = "pending"
    FIRED = "fired"
    CANCELED = "canceled"


class PhaseTimer:
    """
    A single armed deadline for one phase.

    Attributes:
        label: Phase name reported on breach.
        threshold_ms: Budget in milliseconds.
        state: Current TimerState.

    Example:
        >>> timer = PhaseTimer(clock, "connect", 50, on_breach)
        >>> timer.arm()
        >>> timer.cancel()   # connect signal arrived in time
        >>> timer.state
        <TimerState.CANCELED: 'canceled'>
    """

    def __init__(
        self,
        clock: Clock,
        label: str,
        threshold_ms: int,
        callback: BreachCallback,
    ) -> None:
        self.clock = clock
        self.label = label
        self.threshold_ms = threshold_ms
        self._callback = callback
        self._state = TimerState.PENDING
        self._deadline: Cancellable | None = None
        self._deferred: Cancellable | None = None

    @property
    def state(self) -> TimerState:
        """Current timer state."""
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state is TimerState.PENDING

    def arm(self) -> PhaseTimer:
        """Schedule the primary deadline. Arming twice or after a terminal state is a no-op."""
        if self._state is TimerState.PENDING and self._deadline is None:
            self._deadline = self.clock.call_later(self.threshold_ms, self._elapse)
        return self

    def _elapse(self) -> None:
        if self._state is not TimerState.PENDING:
            return
        self._deferred = self.clock.call_soon(self._fire)

    def _fire(self) -> None:
        if self._state is not TimerState.PENDING:
            return
        self._state = TimerState.FIRED
        self._deadline = None
        self._deferred = None
        self._callback(self.threshold_ms, self.label)

    def cancel(self) -> None:
        """Clear the deadline and any deferred invocation. No-op once terminal."""
        if self._state is not TimerState.PENDING:
            return
        self._state = TimerState.CANCELED
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        if self._deferred is not None:
            self._deferred.cancel()
            self._deferred = None

    def __repr__(self) -> str:
        return f"PhaseTimer(label={self.label!r}, threshold_ms={self.threshold_ms}, state={self._state.value})"


class TimerRegistry:
    """
    Owns every timer armed on behalf of one supervised request.

    Example:
        >>> registry = TimerRegistry(clock)
        >>> cancel = registry.add_timeout(100, on_breach, "lookup")
        >>> cancel()
        >>> registry.pending()
        []
    """

    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self._timers: list[PhaseTimer] = []

    @property
    def timers(self) -> tuple[PhaseTimer, ...]:
        """Every timer armed through this registry, in arming order."""
        return tuple(self._timers)

    def add_timeout(
        self,
        threshold_ms: int,
        callback: BreachCallback,
        label: str,
    ) -> Callable[[], None]:
        """
        Arm a deferred-firing deadline.

        Args:
            threshold_ms: Budget in milliseconds.
            callback: Called once with (threshold_ms, label) on breach.
            label: Phase name.

        Returns:
            A callable that cancels the timer; calling it after the timer
            fired is a no-op.
        """
        timer = PhaseTimer(self.clock, label, threshold_ms, callback)
        self._timers.append(timer)
        timer.arm()
        logger.debug(f"Armed '{label}' timer for {threshold_ms}ms")
        return timer.cancel

    def pending(self) -> list[PhaseTimer]:
        """Timers that have neither fired nor been canceled."""
        return [timer for timer in self._timers if timer.is_pending]

    def cancel_all(self) -> int:
        """
        Cancel every pending timer.

        Returns:
            Number of timers that were still pending.
        """
        pending = self.pending()
        for timer in pending:
            timer.cancel()
        return len(pending)
