"""
Tests for the clock implementations.
"""

import asyncio

import pytest

from phaseguard.scheduling import AsyncioClock, Cancellable, Clock, ManualClock


class TestManualClock:
    """Tests for the deterministic virtual clock."""

    def test_conforms_to_protocol(self):
        clock = ManualClock()
        assert isinstance(clock, Clock)
        assert isinstance(clock.call_soon(print), Cancellable)

    def test_timer_fires_at_deadline(self):
        clock = ManualClock()
        fired = []
        clock.call_later(10, fired.append, "deadline")
        clock.tick(9)
        assert fired == []
        clock.tick(1)
        assert fired == ["deadline"]
        assert clock.now_ms() == 10

    def test_timers_fire_in_deadline_then_insertion_order(self):
        clock = ManualClock()
        fired = []
        clock.call_later(5, fired.append, "b")
        clock.call_later(1, fired.append, "a")
        clock.call_later(5, fired.append, "c")
        clock.tick(10)
        assert fired == ["a", "b", "c"]

    def test_time_is_deadline_during_callback(self):
        clock = ManualClock()
        seen = []
        clock.call_later(3, lambda: seen.append(clock.now_ms()))
        clock.tick(10)
        assert seen == [3]
        assert clock.now_ms() == 10

    def test_call_soon_runs_next_turn(self):
        """Callbacks scheduled during a turn wait for the next one."""
        clock = ManualClock()
        order = []

        def first():
            order.append("first")
            clock.call_soon(order.append, "deferred")

        clock.call_soon(first)
        clock.call_soon(order.append, "second")

        assert clock.run_turn() == 2
        assert order == ["first", "second"]
        assert clock.run_turn() == 1
        assert order == ["first", "second", "deferred"]

    def test_cancelled_callbacks_do_not_run(self):
        clock = ManualClock()
        fired = []
        timer = clock.call_later(1, fired.append, "timer")
        soon = clock.call_soon(fired.append, "soon")
        timer.cancel()
        soon.cancel()
        assert timer.cancelled()
        clock.tick(5)
        assert fired == []
        assert clock.pending() == 0

    def test_pending_and_created(self):
        clock = ManualClock()
        clock.call_later(1, print)
        clock.call_later(2, print)
        clock.call_soon(print)
        assert clock.created == 2
        assert clock.pending() == 3
        assert [h.when for h in clock.pending_timers()] == [1, 2]

    def test_zero_delay_timer_runs_without_advancing(self):
        clock = ManualClock()
        fired = []
        clock.call_later(0, fired.append, "now")
        clock.tick(0)
        assert fired == ["now"]

    def test_negative_tick_rejected(self):
        with pytest.raises(ValueError):
            ManualClock().tick(-1)

    def test_start_time(self):
        clock = ManualClock(start_ms=1000)
        handle = clock.call_later(5, print)
        assert handle.when == 1005


class TestAsyncioClock:
    """Tests for the event loop clock."""

    @pytest.mark.asyncio
    async def test_call_later_uses_milliseconds(self):
        clock = AsyncioClock()
        fired = asyncio.Event()
        clock.call_later(10, fired.set)
        await asyncio.wait_for(fired.wait(), timeout=1.0)
        assert fired.is_set()

    @pytest.mark.asyncio
    async def test_call_soon_after_ready_callbacks(self):
        clock = AsyncioClock()
        loop = asyncio.get_running_loop()
        order = []

        def first():
            order.append("first")
            clock.call_soon(order.append, "deferred")

        loop.call_soon(first)
        loop.call_soon(order.append, "second")
        await asyncio.sleep(0.01)
        assert order == ["first", "second", "deferred"]

    @pytest.mark.asyncio
    async def test_cancel(self):
        clock = AsyncioClock()
        fired = []
        handle = clock.call_later(5, fired.append, "late")
        handle.cancel()
        await asyncio.sleep(0.02)
        assert fired == []
        assert handle.cancelled()

    @pytest.mark.asyncio
    async def test_now_ms_tracks_loop_time(self):
        loop = asyncio.get_running_loop()
        clock = AsyncioClock(loop)
        assert clock.loop is loop
        assert abs(clock.now_ms() - loop.time() * 1000.0) < 50
