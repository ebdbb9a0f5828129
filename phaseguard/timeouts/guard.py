"""
Reentry guard for supervised requests.

Associates a request with the cancel handle of the supervisor attached to
it, without storing anything on the request object itself.
"""

from __future__ import annotations

import weakref
from collections.abc import Callable
from typing import Any


class ReentryGuard:
    """
    Identity-keyed record of requests that already have a supervisor.

    Entries are keyed by ``id()`` and matched by identity, never equality.
    Weak-referenceable requests are held weakly and their entry disappears
    when the request is collected; handles are held weakly too, since a
    handle refers back to its request. Objects that cannot be weakly
    referenced are held strongly until ``release`` is called, and callers
    that attach such requests must release them when done. A request
    stays marked after its supervisor detaches, so it cannot be supervised
    twice unless released.

    Example:
        >>> guard = ReentryGuard()
        >>> guard.mark(request, cancel_all)
        True
        >>> guard.mark(request, other_cancel)
        False
        >>> guard.handle_for(request) is cancel_all
        True
    """

    def __init__(self) -> None:
        self._entries: dict[int, tuple[Callable[[], Any], Callable[[], Any]]] = {}

    def _entry(self, request: Any) -> tuple[Callable[[], Any], Callable[[], Any]] | None:
        entry = self._entries.get(id(request))
        if entry is None or entry[0]() is not request:
            return None
        return entry

    def is_marked(self, request: Any) -> bool:
        """Check whether a supervisor was ever attached to ``request``."""
        return self._entry(request) is not None

    def handle_for(self, request: Any) -> Callable[[], None] | None:
        """Return the cancel handle recorded for ``request``, if it is still alive."""
        entry = self._entry(request)
        if entry is None:
            return None
        return entry[1]()

    def mark(self, request: Any, handle: Callable[[], None]) -> bool:
        """
        Record ``handle`` for ``request``.

        Returns:
            True if the request was not marked before; False leaves the
            existing record untouched.
        """
        if self.is_marked(request):
            return False
        key = id(request)
        try:
            request_ref: Callable[[], Any] = weakref.ref(request, lambda _: self._forget(key))
        except TypeError:
            request_ref = _strong(request)
        self._entries[key] = (request_ref, _handle_ref(handle))
        return True

    def release(self, request: Any) -> None:
        """Forget ``request``."""
        if self._entry(request) is not None:
            del self._entries[id(request)]

    def _forget(self, key: int) -> None:
        entry = self._entries.get(key)
        if entry is not None and entry[0]() is None:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


def _strong(obj: Any) -> Callable[[], Any]:
    return lambda: obj


def _handle_ref(handle: Callable[[], None]) -> Callable[[], Any]:
    try:
        if hasattr(handle, "__self__") and hasattr(handle, "__func__"):
            return weakref.WeakMethod(handle)
        return weakref.ref(handle)
    except TypeError:
        return _strong(handle)
