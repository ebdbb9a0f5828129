"""
phaseguard: phase-based timeouts for outbound network requests.

A request's lifecycle is split into phases (DNS lookup, connect, TLS
handshake, socket idle, body upload, server response and the overall
request). phaseguard lets a caller give each phase an optional budget and
reports a breach as a typed PhaseTimeoutError on the request's own error
channel, without ever timing phases that do not apply to the connection.

Basic Usage:
    >>> from phaseguard import TimeoutSupervisor, DelayConfig, ConnectionContext
    >>>
    >>> supervisor = TimeoutSupervisor()
    >>> cancel_all = supervisor.attach(
    ...     request,
    ...     DelayConfig(lookup=100, connect=250, secure_connect=250, response=10_000),
    ...     ConnectionContext.from_url("https://api.example.com/v1/items"),
    ... )
    >>> request.on("error", handle_error)  # receives PhaseTimeoutError on breach
    >>> ...
    >>> cancel_all()
"""

__version__ = "0.1.0"

from phaseguard.events import (
    EventEmitter,
    EventSource,
    RequestSource,
    ResponseSource,
    SocketSource,
    SubscriptionTracker,
)
from phaseguard.exceptions import (
    ConfigurationError,
    ConnectionTeardownError,
    PhaseguardError,
    PhaseTimeoutError,
    is_benign_teardown,
)
from phaseguard.scheduling import AsyncioClock, Clock, ManualClock
from phaseguard.timeouts import (
    CancelHandle,
    PhaseTimer,
    ReentryGuard,
    SupervisorConfig,
    SupervisorState,
    TimeoutSupervisor,
    TimerRegistry,
    TimerState,
    timed_out,
)
from phaseguard.types import ConnectionContext, DelayConfig, Phase, is_ip

__all__ = [
    # Version
    "__version__",
    # Supervisor
    "TimeoutSupervisor",
    "SupervisorConfig",
    "SupervisorState",
    "CancelHandle",
    "timed_out",
    # Timers
    "PhaseTimer",
    "TimerRegistry",
    "TimerState",
    "ReentryGuard",
    # Clocks
    "Clock",
    "AsyncioClock",
    "ManualClock",
    # Types
    "Phase",
    "DelayConfig",
    "ConnectionContext",
    "is_ip",
    # Events
    "EventEmitter",
    "EventSource",
    "RequestSource",
    "ResponseSource",
    "SocketSource",
    "SubscriptionTracker",
    # Exceptions
    "PhaseguardError",
    "ConfigurationError",
    "PhaseTimeoutError",
    "ConnectionTeardownError",
    "is_benign_teardown",
]
