"""
Lifecycle event sources consumed by the timeout supervisor.

The supervisor never talks to sockets directly. It subscribes to the
signals a request, its socket and its response emit, described here as
protocols. Real transports implement them; ``EventEmitter`` is a small
synchronous emitter that adapters and test fakes can build on.

Signals:
    request:  "error"(err), "response"(response), "socket"(socket),
              "upload-complete"(), "timeout"()
    socket:   "lookup"(err, ...), "connect"(), "secureConnect"()
    response: "end"()
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


@runtime_checkable
class EventSource(Protocol):
    """Anything that lets callers add and remove signal listeners."""

    def on(self, event: str, listener: Listener) -> Any:
        """Register a persistent listener."""
        ...

    def once(self, event: str, listener: Listener) -> Any:
        """Register a listener removed after its first call."""
        ...

    def remove_listener(self, event: str, listener: Listener) -> Any:
        """Remove one registration of ``listener``."""
        ...


@runtime_checkable
class ResponseSource(EventSource, Protocol):
    """A response handle. Emits "end" once the body has been consumed."""


@runtime_checkable
class SocketSource(EventSource, Protocol):
    """
    A transport connection.

    Attributes:
        connecting: True while the connection is still being established.
        socket_path: Unix domain socket path, or None for network sockets.
    """

    connecting: bool
    socket_path: str | None

    def address(self) -> dict[str, Any]:
        """Return the bound address; the "address" key is absent until resolved."""
        ...


@runtime_checkable
class RequestSource(EventSource, Protocol):
    """An outbound request whose lifecycle the supervisor observes."""

    def emit(self, event: str, *args: Any) -> bool:
        """Deliver a signal to the request's listeners."""
        ...

    def abort(self) -> None:
        """Abort the request and tear down its connection."""
        ...

    def set_timeout(self, ms: int, handler: Listener) -> Any:
        """Arm the transport's idle timer, delivering "timeout" to ``handler``."""
        ...


class EventEmitter:
    """
    Minimal synchronous event emitter.

    Listeners run in registration order. Dispatch iterates over a snapshot,
    so a listener may remove itself or others while an event is delivered.
    Exceptions raised by a listener propagate to the caller of ``emit``.

    Example:
        >>> emitter = EventEmitter()
        >>> emitter.once("end", lambda: print("done"))
        >>> emitter.emit("end")
        done
        True
        >>> emitter.listener_count("end")
        0
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> EventEmitter:
        """Register a persistent listener."""
        self._listeners[event].append(listener)
        return self

    add_listener = on

    def once(self, event: str, listener: Listener) -> EventEmitter:
        """Register a listener that is removed before its first call."""
        self._listeners[event].append(_OnceWrapper(self, event, listener))
        return self

    def remove_listener(self, event: str, listener: Listener) -> EventEmitter:
        """
        Remove the most recent registration of ``listener``.

        A ``once`` registration can be removed by passing the original callable.
        Unknown listeners are ignored.
        """
        registered = self._listeners.get(event)
        if not registered:
            return self
        for index in range(len(registered) - 1, -1, -1):
            candidate = registered[index]
            if candidate is listener or (
                isinstance(candidate, _OnceWrapper) and candidate.listener is listener
            ):
                del registered[index]
                break
        if not registered:
            del self._listeners[event]
        return self

    off = remove_listener

    def emit(self, event: str, *args: Any) -> bool:
        """
        Call every listener registered for ``event``.

        Returns:
            True if the event had listeners.
        """
        registered = self._listeners.get(event)
        if not registered:
            return False
        for listener in list(registered):
            listener(*args)
        return True

    def listeners(self, event: str) -> list[Listener]:
        """Return the callables registered for ``event``."""
        return [
            entry.listener if isinstance(entry, _OnceWrapper) else entry
            for entry in self._listeners.get(event, [])
        ]

    def listener_count(self, event: str) -> int:
        """Number of listeners registered for ``event``."""
        return len(self._listeners.get(event, []))

    def event_names(self) -> list[str]:
        """Events that currently have listeners."""
        return [name for name, registered in self._listeners.items() if registered]


class _OnceWrapper:
    """Removes itself from the emitter before forwarding the first call."""

    __slots__ = ("emitter", "event", "listener", "fired")

    def __init__(self, emitter: EventEmitter, event: str, listener: Listener) -> None:
        self.emitter = emitter
        self.event = event
        self.listener = listener
        self.fired = False

    def __call__(self, *args: Any) -> Any:
        if self.fired:
            return None
        self.fired = True
        self.emitter.remove_listener(self.event, self)
        return self.listener(*args)


@dataclass(eq=False)
class _Subscription:
    source: EventSource
    event: str
    handler: Listener


class SubscriptionTracker:
    """
    Records the listeners installed on shared event sources.

    Sources are shared with other collaborators, so release removes only
    the registrations made through this tracker and never clears a source.

    Example:
        >>> tracker = SubscriptionTracker()
        >>> tracker.once(request, "response", on_response)
        >>> tracker.on(request, "error", on_error)
        >>> tracker.active_count()
        2
        >>> tracker.release_all()
        >>> tracker.active_count()
        0
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []
        self._cleanups: list[Callable[[], Any]] = []
        self._released = False

    @property
    def released(self) -> bool:
        """True once release_all has run."""
        return self._released

    def on(self, source: EventSource, event: str, handler: Listener) -> Listener:
        """
        Subscribe ``handler`` persistently and track the registration.

        Nothing is installed once the tracker has been released.
        """
        if self._released:
            logger.debug(f"Ignoring '{event}' subscription after release")
            return handler
        subscription = _Subscription(source, event, handler)
        self._subscriptions.append(subscription)
        source.on(event, handler)
        return handler

    def once(self, source: EventSource, event: str, handler: Listener) -> Listener:
        """
        Subscribe ``handler`` for a single delivery and track the registration.

        The record is dropped when the signal fires, since the source has
        already removed its own registration by then.
        """
        if self._released:
            logger.debug(f"Ignoring '{event}' subscription after release")
            return handler

        def forward(*args: Any) -> Any:
            self._discard(subscription)
            return handler(*args)

        subscription = _Subscription(source, event, forward)
        self._subscriptions.append(subscription)
        source.once(event, forward)
        return forward

    def add_cleanup(self, cleanup: Callable[[], Any]) -> None:
        """Register an extra release step, run by release_all."""
        if self._released:
            cleanup()
            return
        self._cleanups.append(cleanup)

    def active_count(self) -> int:
        """Number of tracked registrations still installed."""
        return len(self._subscriptions)

    def release_all(self) -> None:
        """
        Remove every tracked registration and run cleanup steps, once.

        A failing removal is logged and does not stop the others.
        """
        if self._released:
            return
        self._released = True
        subscriptions, self._subscriptions = self._subscriptions, []
        cleanups, self._cleanups = self._cleanups, []
        for subscription in subscriptions:
            try:
                subscription.source.remove_listener(subscription.event, subscription.handler)
            except Exception as e:
                logger.error(f"Failed to remove '{subscription.event}' listener: {e}")
        for cleanup in cleanups:
            try:
                cleanup()
            except Exception as e:
                logger.error(f"Subscription cleanup error: {e}")
        logger.debug(
            f"Released {len(subscriptions)} subscriptions and {len(cleanups)} cleanups"
        )

    def _discard(self, subscription: _Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
