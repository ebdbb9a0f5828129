"""
Phase-based timeout supervision for a single outbound request.

The supervisor subscribes to a request's lifecycle signals, arms a timer
for each configured phase as that phase becomes active, and on a breach
emits a PhaseTimeoutError on the request's error channel and aborts the
request. Phases that do not apply to the connection are never timed: a
literal IP or unix socket skips DNS lookup, a plain-text protocol skips
the TLS handshake, and a reused connection skips both lookup and connect.

Example:
    >>> supervisor = TimeoutSupervisor(clock=AsyncioClock())
    >>> cancel_all = supervisor.attach(
    ...     request,
    ...     DelayConfig(lookup=100, connect=200, response=5000),
    ...     ConnectionContext(hostname="example.com", protocol="https:"),
    ... )
    >>> # ... later, when the caller gives up on the request:
    >>> cancel_all()
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from phaseguard.events import RequestSource, SocketSource, SubscriptionTracker
from phaseguard.exceptions import ConfigurationError, PhaseTimeoutError, is_benign_teardown
from phaseguard.observability.hooks import (
    SUPERVISOR_DETACHED,
    TIMER_ARMED,
    TIMER_BREACHED,
    MetricHook,
)
from phaseguard.scheduling.clock import AsyncioClock, Clock
from phaseguard.timeouts.guard import ReentryGuard
from phaseguard.timeouts.timer import TimerRegistry
from phaseguard.types import ConnectionContext, DelayConfig, Phase

logger = logging.getLogger(__name__)


def _noop() -> None:
    return None


@dataclass
class SupervisorConfig:
    """
    Behaviour switches for the supervisor.

    Attributes:
        benign_error: Classifier for request errors that describe an
            expected connection teardown. Such errors do not detach the
            supervisor.
        secure_protocols: Protocols that perform a TLS handshake after
            connecting.

    Example:
        >>> config = SupervisorConfig(secure_protocols=("https:", "wss:"))
    """

    benign_error: Callable[[BaseException | None], bool] = is_benign_teardown
    secure_protocols: tuple[str, ...] = ("https:",)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "benign_error": getattr(self.benign_error, "__name__", repr(self.benign_error)),
            "secure_protocols": list(self.secure_protocols),
        }


@dataclass
class SupervisorState:
    """
    Bookkeeping owned by one attach call.

    ``detached`` only ever goes from False to True. Once it is True no
    timer is armed, no error is emitted and every subscription is gone.
    """

    delays: DelayConfig
    context: ConnectionContext
    timers: TimerRegistry
    subscriptions: SubscriptionTracker
    attached: bool = False
    detached: bool = False
    breaches: list[PhaseTimeoutError] = field(default_factory=list)


class CancelHandle:
    """
    Idempotent detach operation returned by ``TimeoutSupervisor.attach``.

    Calling it cancels every armed timer and removes every listener the
    attach installed. Further calls do nothing, and it never raises.
    """

    def __init__(self, attachment: _Attachment) -> None:
        self._attachment = attachment

    def __call__(self) -> None:
        self._attachment.cancel_all()

    @property
    def state(self) -> SupervisorState:
        """State of the supervised request, for inspection."""
        return self._attachment.state

    @property
    def detached(self) -> bool:
        return self._attachment.state.detached

    def __repr__(self) -> str:
        return f"CancelHandle(detached={self.detached})"


class _Attachment:
    """Orchestrates the phase timers of one request."""

    def __init__(
        self,
        supervisor: TimeoutSupervisor,
        request: RequestSource,
        delays: DelayConfig,
        context: ConnectionContext,
    ) -> None:
        self.supervisor = supervisor
        self.request = request
        self.state = SupervisorState(
            delays=delays,
            context=context,
            timers=TimerRegistry(supervisor.clock),
            subscriptions=SubscriptionTracker(),
        )
        # Held here so the handle lives as long as the request's listeners do.
        self.handle = CancelHandle(self)

    def start(self) -> None:
        state = self.state
        delays = state.delays
        subs = state.subscriptions
        request = self.request
        state.attached = True

        subs.on(request, "error", self._on_error)
        subs.once(request, "response", self._on_response)

        if delays.request is not None:
            self._add_timeout(Phase.REQUEST)

        if delays.socket is not None:
            self._bind_socket_idle(delays.socket)

        subs.once(request, "socket", self._on_socket)

        if delays.response is not None:
            subs.once(request, "upload-complete", self._on_upload_complete)

    def _add_timeout(self, phase: Phase) -> Callable[[], None]:
        if self.state.detached:
            return _noop
        threshold_ms = self.state.delays.get(phase)
        cancel = self.state.timers.add_timeout(threshold_ms, self._on_breach, phase.value)
        self.supervisor._emit_metric(TIMER_ARMED, {"phase": phase.value})
        return cancel

    def _cancel_on(self, source: Any, event: str, cancel: Callable[[], None]) -> None:
        self.state.subscriptions.once(source, event, lambda *args: cancel())

    def _on_breach(self, threshold_ms: int, phase: str) -> None:
        if self.state.detached:
            return
        error = PhaseTimeoutError(phase, threshold_ms)
        self.state.breaches.append(error)
        logger.info(f"Request timed out in phase '{phase}' after {threshold_ms}ms")
        self.supervisor._emit_metric(
            TIMER_BREACHED, {"phase": phase, "threshold_ms": threshold_ms}
        )
        # The error listener detaches us; the breach itself does not.
        self.request.emit("error", error)
        self.request.abort()

    def _bind_socket_idle(self, threshold_ms: int) -> None:
        def on_idle(*args: Any) -> None:
            self._on_breach(threshold_ms, Phase.SOCKET.value)

        self.request.set_timeout(threshold_ms, on_idle)
        self.supervisor._emit_metric(TIMER_ARMED, {"phase": Phase.SOCKET.value})
        # Resetting the idle timer to 0 leaks on kept-alive connections, so
        # only the listener is removed and the transport's timer is left alone.
        self.state.subscriptions.add_cleanup(
            lambda: self.request.remove_listener("timeout", on_idle)
        )

    def _on_error(self, error: BaseException | None = None, *args: Any) -> None:
        if self.supervisor.config.benign_error(error):
            logger.debug(f"Ignoring expected connection teardown: {error}")
            return
        self.cancel_all()

    def _on_response(self, response: Any, *args: Any) -> None:
        self.state.subscriptions.once(response, "end", self._on_response_end)

    def _on_response_end(self, *args: Any) -> None:
        self.cancel_all()

    def _on_upload_complete(self, *args: Any) -> None:
        cancel = self._add_timeout(Phase.RESPONSE)
        self._cancel_on(self.request, "response", cancel)

    def _on_socket(self, socket: SocketSource, *args: Any) -> None:
        state = self.state
        delays = state.delays
        context = state.context
        socket_path = getattr(socket, "socket_path", None) or getattr(
            self.request, "socket_path", None
        )
        direct = bool(socket_path) or context.is_ip_target

        if socket.connecting:
            if delays.lookup is not None and not direct and not _has_resolved_address(socket):
                self._cancel_on(socket, "lookup", self._add_timeout(Phase.LOOKUP))

            if delays.connect is not None:
                if direct:
                    self._cancel_on(socket, "connect", self._add_timeout(Phase.CONNECT))
                else:

                    def on_lookup(error: BaseException | None = None, *args: Any) -> None:
                        if error is None:
                            self._cancel_on(socket, "connect", self._add_timeout(Phase.CONNECT))

                    state.subscriptions.once(socket, "lookup", on_lookup)

            if delays.secure_connect is not None and context.is_secure(
                self.supervisor.config.secure_protocols
            ):

                def on_connect(*args: Any) -> None:
                    cancel = self._add_timeout(Phase.SECURE_CONNECT)
                    self._cancel_on(socket, "secureConnect", cancel)

                state.subscriptions.once(socket, "connect", on_connect)

        if delays.send is not None:

            def time_send(*args: Any) -> None:
                self._cancel_on(self.request, "upload-complete", self._add_timeout(Phase.SEND))

            if socket.connecting:
                state.subscriptions.once(socket, "connect", time_send)
            else:
                time_send()

    def cancel_all(self) -> None:
        state = self.state
        if state.detached:
            return
        state.detached = True
        canceled = state.timers.cancel_all()
        state.subscriptions.release_all()
        logger.debug(f"Supervisor detached, canceled {canceled} pending timers")
        self.supervisor._emit_metric(SUPERVISOR_DETACHED, None)


def _has_resolved_address(socket: SocketSource) -> bool:
    info = socket.address()
    if isinstance(info, Mapping):
        return info.get("address") is not None
    return bool(info)


class TimeoutSupervisor:
    """
    Attaches phase timeouts to outbound requests.

    One supervisor can serve any number of requests; each ``attach`` call
    owns its own timers and subscriptions. A request can be attached only
    once per guard.

    Attributes:
        clock: Scheduler used to arm timers.
        config: Behaviour switches.

    Example:
        >>> clock = ManualClock()
        >>> supervisor = TimeoutSupervisor(clock=clock)
        >>> cancel_all = supervisor.attach(request, {"request": 1}, None)
        >>> clock.tick(2)
        >>> # request emitted PhaseTimeoutError(phase="request", threshold_ms=1)
    """

    def __init__(
        self,
        clock: Clock | None = None,
        config: SupervisorConfig | None = None,
        metric_hook: MetricHook | None = None,
        guard: ReentryGuard | None = None,
    ) -> None:
        """
        Initialize the supervisor.

        Args:
            clock: Scheduler for phase timers. Defaults to an AsyncioClock
                on the running loop.
            config: Supervisor configuration. Uses defaults if None.
            metric_hook: Optional metrics sink.
            guard: Reentry guard, shareable between supervisors.
        """
        self.clock = clock or AsyncioClock()
        self.config = config or SupervisorConfig()
        self.metric_hook = metric_hook
        self.guard = guard or ReentryGuard()

    def attach(
        self,
        request: RequestSource,
        delays: DelayConfig | Mapping[str, Any] | int | None,
        context: ConnectionContext | Mapping[str, Any] | None = None,
    ) -> Callable[[], None]:
        """
        Supervise ``request`` with the given phase budgets.

        Args:
            request: The request's event source.
            delays: Per-phase budgets; see ``DelayConfig.coerce``.
            context: Host, hostname and protocol of the connection.

        Returns:
            An idempotent cancel handle. When the request was already
            supervised, a no-op callable is returned instead; the original
            handle stays available through ``cancel_handle_for``.

        Raises:
            ConfigurationError: If the delays or context are invalid.
        """
        delay_config = DelayConfig.coerce(delays)
        connection = _coerce_context(context)

        if self.guard.is_marked(request):
            logger.warning(
                "Timeout supervisor already attached to this request; "
                "returning a no-op cancel handle"
            )
            return _noop

        attachment = _Attachment(self, request, delay_config, connection)
        self.guard.mark(request, attachment.handle)
        try:
            attachment.start()
        except BaseException:
            # A half-started attach must not leave listeners or the mark behind.
            attachment.cancel_all()
            self.guard.release(request)
            raise
        logger.debug(
            f"Supervisor attached with phases {[p.value for p in delay_config.enabled_phases()]}"
        )
        return attachment.handle

    def is_attached(self, request: RequestSource) -> bool:
        """Check whether ``request`` has ever been supervised through this guard."""
        return self.guard.is_marked(request)

    def cancel_handle_for(self, request: RequestSource) -> Callable[[], None] | None:
        """Return the real cancel handle of a supervised request, if still alive."""
        return self.guard.handle_for(request)

    def release(self, request: RequestSource) -> None:
        """
        Forget that ``request`` was supervised.

        Requests that cannot be weakly referenced are held by the guard until
        released, so callers finished with such a request must call this.
        The request can be attached again afterwards.
        """
        self.guard.release(request)

    def _emit_metric(self, name: str, tags: dict[str, Any] | None) -> None:
        if self.metric_hook is None:
            return
        try:
            self.metric_hook.increment(name, 1.0, tags)
        except Exception as e:
            logger.error(f"Metric hook error: {e}")


def _coerce_context(
    context: ConnectionContext | Mapping[str, Any] | None,
) -> ConnectionContext:
    if context is None:
        return ConnectionContext()
    if isinstance(context, ConnectionContext):
        return context
    if isinstance(context, Mapping):
        return ConnectionContext.from_dict(context)
    raise ConfigurationError(
        config_key="context",
        expected="a ConnectionContext or a mapping with host, hostname and protocol",
        received=context,
    )


# Default supervisor instance
_default_supervisor: TimeoutSupervisor | None = None
_supervisor_lock = threading.Lock()


def get_default_supervisor() -> TimeoutSupervisor:
    """
    Get the default supervisor.

    Creates one on first use, scheduling on the running asyncio loop.
    """
    global _default_supervisor
    with _supervisor_lock:
        if _default_supervisor is None:
            _default_supervisor = TimeoutSupervisor()
        return _default_supervisor


def set_default_supervisor(supervisor: TimeoutSupervisor | None) -> None:
    """Replace the default supervisor; None resets it."""
    global _default_supervisor
    with _supervisor_lock:
        _default_supervisor = supervisor


def timed_out(
    request: RequestSource,
    delays: DelayConfig | Mapping[str, Any] | int | None,
    context: ConnectionContext | Mapping[str, Any] | None = None,
    supervisor: TimeoutSupervisor | None = None,
) -> Callable[[], None]:
    """
    Attach phase timeouts to ``request`` using the default supervisor.

    Example:
        >>> cancel_all = timed_out(request, {"lookup": 100, "request": 5000}, context)
        >>> response = await wait_for_response(request)
        >>> cancel_all()
    """
    return (supervisor or get_default_supervisor()).attach(request, delays, context)
