"""Tests for the reentry guard."""

from __future__ import annotations

import gc

from phaseguard.timeouts.guard import ReentryGuard


class Request:
    """Weak-referenceable request stand-in."""


class Handle:
    def __call__(self):
        return None


class TestReentryGuard:
    """Tests for ReentryGuard."""

    def test_mark_once(self):
        guard = ReentryGuard()
        request, handle = Request(), Handle()
        assert guard.mark(request, handle)
        assert not guard.mark(request, Handle())
        assert guard.is_marked(request)
        assert guard.handle_for(request) is handle

    def test_unmarked(self):
        guard = ReentryGuard()
        assert not guard.is_marked(Request())
        assert guard.handle_for(Request()) is None

    def test_identity_not_equality(self):
        """Two equal requests are still distinct requests."""

        class EqualRequest:
            def __eq__(self, other):
                return isinstance(other, EqualRequest)

            def __hash__(self):
                return 1

        guard = ReentryGuard()
        first, second = EqualRequest(), EqualRequest()
        assert first == second
        guard.mark(first, Handle())
        assert guard.is_marked(first)
        assert not guard.is_marked(second)

    def test_request_is_not_kept_alive(self):
        guard = ReentryGuard()
        request, handle = Request(), Handle()
        guard.mark(request, handle)
        assert len(guard) == 1
        del request
        gc.collect()
        assert len(guard) == 0

    def test_handle_held_weakly(self):
        guard = ReentryGuard()
        request = Request()
        guard.mark(request, Handle())
        gc.collect()
        assert guard.is_marked(request)
        assert guard.handle_for(request) is None

    def test_bound_method_handle(self):
        class Owner:
            def cancel(self):
                return None

        guard = ReentryGuard()
        owner, request = Owner(), Request()
        guard.mark(request, owner.cancel)
        assert guard.handle_for(request) == owner.cancel

    def test_unhashable_request(self):
        """Objects that cannot be weakly referenced are keyed by identity."""
        guard = ReentryGuard()
        request, handle = [], Handle()
        assert guard.mark(request, handle)
        assert guard.is_marked(request)
        assert not guard.is_marked([])
        assert guard.handle_for(request) is handle

        guard.release(request)
        assert not guard.is_marked(request)
        assert len(guard) == 0
