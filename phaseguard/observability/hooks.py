"""
Metric hooks for phaseguard.

The supervisor reports timer activity through an optional MetricHook, so
applications can forward counters to Prometheus, StatsD or OpenTelemetry
without phaseguard depending on any of them.

Emitted metrics:
    phaseguard.timer.armed         counter, tag "phase"
    phaseguard.timer.breached      counter, tags "phase", "threshold_ms"
    phaseguard.supervisor.detached counter

Example:
    >>> from phaseguard.observability import InMemoryMetricHook
    >>> hook = InMemoryMetricHook()
    >>> supervisor = TimeoutSupervisor(clock=clock, metric_hook=hook)
    >>> ...
    >>> hook.get_counter("phaseguard.timer.breached", {"phase": "lookup", "threshold_ms": 1})
    1.0
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Protocol, runtime_checkable

TIMER_ARMED = "phaseguard.timer.armed"
TIMER_BREACHED = "phaseguard.timer.breached"
SUPERVISOR_DETACHED = "phaseguard.supervisor.detached"


@runtime_checkable
class MetricHook(Protocol):
    """
    Protocol for metric backends.

    Example:
        >>> class StatsdHook:
        ...     def increment(self, name, value=1.0, tags=None):
        ...         statsd.incr(name, value, tags=tags)
    """

    def increment(self, name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
        """
        Increment a counter metric.

        Args:
            name: The metric name (e.g., "phaseguard.timer.armed").
            value: The amount to increment by (default 1.0).
            tags: Optional tags/labels for the metric.
        """
        ...


class LoggingMetricHook:
    """
    Simple hook that logs metrics (for development and debugging).

    Example:
        >>> import logging
        >>> logging.basicConfig(level=logging.DEBUG)
        >>> hook = LoggingMetricHook()
        >>> hook.increment("phaseguard.timer.armed", 1.0, {"phase": "lookup"})
        DEBUG:phaseguard.metrics:COUNTER phaseguard.timer.armed=1.0 tags={'phase': 'lookup'}
    """

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.DEBUG):
        """
        Initialize the logging hook.

        Args:
            logger: Logger instance to use. Defaults to "phaseguard.metrics".
            level: Logging level for metric messages.
        """
        self.logger = logger or logging.getLogger("phaseguard.metrics")
        self.level = level

    def increment(self, name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
        """Log a counter increment."""
        self.logger.log(self.level, f"COUNTER {name}={value} tags={tags}")


class InMemoryMetricHook:
    """
    In-memory metrics for testing.

    Example:
        >>> hook = InMemoryMetricHook()
        >>> hook.increment("phaseguard.timer.armed", tags={"phase": "lookup"})
        >>> hook.get_counter("phaseguard.timer.armed", {"phase": "lookup"})
        1.0
        >>> hook.get_counter("phaseguard.timer.armed", {"phase": "connect"})
        0.0
    """

    def __init__(self):
        self.counters: dict[str, float] = defaultdict(float)

    def _make_key(self, name: str, tags: dict[str, Any] | None) -> str:
        """Create a unique key from metric name and tags."""
        if not tags:
            return name
        sorted_tags = sorted(tags.items())
        tag_str = ",".join(f"{k}={v}" for k, v in sorted_tags)
        return f"{name}[{tag_str}]"

    def increment(self, name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
        key = self._make_key(name, tags)
        self.counters[key] += value

    def get_counter(self, name: str, tags: dict[str, Any] | None = None) -> float:
        """
        Get the current value of a counter.

        Returns:
            The current counter value, or 0.0 if never incremented.
        """
        return self.counters.get(self._make_key(name, tags), 0.0)

    def total(self, name: str) -> float:
        """Sum a counter across every tag combination."""
        return sum(
            value
            for key, value in self.counters.items()
            if key == name or key.startswith(f"{name}[")
        )

    def reset(self) -> None:
        """Reset all metrics to initial state."""
        self.counters.clear()
