"""
Pytest fixtures for phaseguard tests.

Provides a virtual clock, a supervisor wired to an in-memory metric hook,
and fake request/socket/response event sources.
"""

from __future__ import annotations

from typing import Any

import pytest

from phaseguard.events import EventEmitter
from phaseguard.observability.hooks import InMemoryMetricHook
from phaseguard.scheduling.clock import Clock, ManualClock
from phaseguard.timeouts.supervisor import TimeoutSupervisor


# ============================================================================
# Fake event sources
# ============================================================================


class FakeResponse(EventEmitter):
    """Response handle that emits "end" on demand."""

    def end(self) -> None:
        self.emit("end")


class FakeSocket(EventEmitter):
    """
    Socket double.

    ``connecting`` starts True for a fresh connection and False for a
    kept-alive one taken from a pool.
    """

    def __init__(
        self,
        connecting: bool = True,
        address: str | None = None,
        socket_path: str | None = None,
    ) -> None:
        super().__init__()
        self.connecting = connecting
        self.socket_path = socket_path
        self._address = address

    def address(self) -> dict[str, Any]:
        if self._address is None:
            return {}
        return {"address": self._address, "family": "IPv4", "port": 0}

    def resolve(self, error: BaseException | None = None, address: str = "127.0.0.1") -> None:
        if error is None:
            self._address = address
        self.emit("lookup", error, address, 4, "localhost")

    def connect(self) -> None:
        self.connecting = False
        self.emit("connect")

    def secure(self) -> None:
        self.emit("secureConnect")


class FakeRequest(EventEmitter):
    """
    Request double.

    A collaborator error listener is installed up front, as an HTTP client
    would, and records every error the request reports. When a clock is
    given, ``set_timeout`` arms an idle timer that emits "timeout".
    """

    def __init__(self, clock: Clock | None = None, socket_path: str | None = None) -> None:
        super().__init__()
        self.clock = clock
        self.socket_path = socket_path
        self.aborted = 0
        self.errors: list[BaseException] = []
        self.idle_timeouts: list[int] = []
        self._idle_handle = None
        self.on("error", self.errors.append)

    def abort(self) -> None:
        self.aborted += 1
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        self.emit("abort")

    def set_timeout(self, ms: int, handler: Any) -> FakeRequest:
        self.idle_timeouts.append(ms)
        self.once("timeout", handler)
        if self.clock is not None:
            self._idle_handle = self.clock.call_later(ms, self.emit, "timeout")
        return self

    def assign_socket(self, socket: FakeSocket) -> FakeSocket:
        self.emit("socket", socket)
        return socket

    def finish_upload(self) -> None:
        self.emit("upload-complete")

    def respond(self) -> FakeResponse:
        response = FakeResponse()
        self.emit("response", response)
        return response


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock() -> ManualClock:
    """Virtual clock starting at t=0."""
    return ManualClock()


@pytest.fixture
def metrics() -> InMemoryMetricHook:
    """In-memory metric sink."""
    return InMemoryMetricHook()


@pytest.fixture
def supervisor(clock: ManualClock, metrics: InMemoryMetricHook) -> TimeoutSupervisor:
    """Supervisor scheduling on the virtual clock."""
    return TimeoutSupervisor(clock=clock, metric_hook=metrics)


@pytest.fixture
def request_source(clock: ManualClock) -> FakeRequest:
    """Fresh request whose idle timer runs on the virtual clock."""
    return FakeRequest(clock=clock)


@pytest.fixture
def fresh_socket() -> FakeSocket:
    """Socket still connecting, with no resolved address."""
    return FakeSocket(connecting=True)


@pytest.fixture
def pooled_socket() -> FakeSocket:
    """Kept-alive socket already connected."""
    return FakeSocket(connecting=False, address="127.0.0.1")
