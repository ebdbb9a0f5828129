"""
Phase timeout supervision for outbound requests.

Example:
    >>> from phaseguard.timeouts import TimeoutSupervisor
    >>> from phaseguard.types import ConnectionContext, DelayConfig
    >>>
    >>> supervisor = TimeoutSupervisor()
    >>> cancel_all = supervisor.attach(
    ...     request,
    ...     DelayConfig(lookup=50, connect=100, request=5000),
    ...     ConnectionContext.from_url("https://example.com/"),
    ... )
    >>> # On natural completion or external cancellation
    >>> cancel_all()
"""

from phaseguard.timeouts.guard import ReentryGuard
from phaseguard.timeouts.supervisor import (
    CancelHandle,
    SupervisorConfig,
    SupervisorState,
    TimeoutSupervisor,
    get_default_supervisor,
    set_default_supervisor,
    timed_out,
)
from phaseguard.timeouts.timer import (
    PhaseTimer,
    TimerRegistry,
    TimerState,
)

__all__ = [
    # Supervisor
    "CancelHandle",
    "SupervisorConfig",
    "SupervisorState",
    "TimeoutSupervisor",
    "get_default_supervisor",
    "set_default_supervisor",
    "timed_out",
    # Timers
    "PhaseTimer",
    "TimerRegistry",
    "TimerState",
    # Guard
    "ReentryGuard",
]
