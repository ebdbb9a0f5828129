"""
Scheduling primitives for phaseguard.

Timers are armed through an explicit Clock rather than a global timer
table. AsyncioClock schedules on an event loop; ManualClock steps virtual
time for deterministic tests.

Example:
    >>> from phaseguard.scheduling import ManualClock
    >>>
    >>> clock = ManualClock()
    >>> fired = []
    >>> clock.call_later(5, fired.append, "elapsed")
    >>> clock.tick(5)
    >>> assert fired == ["elapsed"]
"""

from phaseguard.scheduling.clock import (
    AsyncioClock,
    Cancellable,
    Clock,
    ManualClock,
    ManualHandle,
)

__all__ = [
    # Protocols
    "Cancellable",
    "Clock",
    # Implementations
    "AsyncioClock",
    "ManualClock",
    "ManualHandle",
]
