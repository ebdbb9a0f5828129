"""Tests for the supervisor running on a real asyncio event loop."""

from __future__ import annotations

import asyncio

import pytest

from phaseguard.exceptions import PhaseTimeoutError
from phaseguard.scheduling import AsyncioClock
from phaseguard.timeouts.supervisor import TimeoutSupervisor
from phaseguard.types import ConnectionContext

from tests.conftest import FakeRequest, FakeSocket

CONTEXT = ConnectionContext.from_url("http://example.com/")


class TestAsyncioSupervisor:
    """End-to-end behaviour with AsyncioClock."""

    @pytest.mark.asyncio
    async def test_request_timeout(self):
        supervisor = TimeoutSupervisor(clock=AsyncioClock())
        request = FakeRequest()
        supervisor.attach(request, {"request": 1}, CONTEXT)

        await asyncio.sleep(0.05)

        assert len(request.errors) == 1
        assert isinstance(request.errors[0], PhaseTimeoutError)
        assert request.errors[0].phase == "request"
        assert request.aborted == 1

    @pytest.mark.asyncio
    async def test_lookup_timeout(self):
        supervisor = TimeoutSupervisor(clock=AsyncioClock())
        request = FakeRequest()
        supervisor.attach(request, {"lookup": 1}, CONTEXT)
        request.assign_socket(FakeSocket(connecting=True))

        await asyncio.sleep(0.05)

        assert [e.phase for e in request.errors] == ["lookup"]

    @pytest.mark.asyncio
    async def test_completed_request_never_breaches(self):
        loop = asyncio.get_running_loop()
        supervisor = TimeoutSupervisor(clock=AsyncioClock(loop))
        request = FakeRequest()
        socket = FakeSocket(connecting=False, address="127.0.0.1")
        handle = supervisor.attach(request, {"request": 30, "response": 30}, CONTEXT)

        request.assign_socket(socket)
        request.finish_upload()
        await asyncio.sleep(0.005)
        request.respond().end()
        await asyncio.sleep(0.06)

        assert handle.detached
        assert request.errors == []

    @pytest.mark.asyncio
    async def test_cancel_all_stops_pending_breach(self):
        supervisor = TimeoutSupervisor(clock=AsyncioClock())
        request = FakeRequest()
        cancel_all = supervisor.attach(request, {"request": 10}, CONTEXT)
        cancel_all()

        await asyncio.sleep(0.05)

        assert request.errors == []
        assert request.listener_count("error") == 1
