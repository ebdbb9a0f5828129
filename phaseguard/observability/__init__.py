"""
Metric hooks for phaseguard.

Example:
    >>> from phaseguard.observability import InMemoryMetricHook
    >>> hook = InMemoryMetricHook()
    >>> supervisor = TimeoutSupervisor(metric_hook=hook)
"""

from phaseguard.observability.hooks import (
    SUPERVISOR_DETACHED,
    TIMER_ARMED,
    TIMER_BREACHED,
    InMemoryMetricHook,
    LoggingMetricHook,
    MetricHook,
)

__all__ = [
    "MetricHook",
    "LoggingMetricHook",
    "InMemoryMetricHook",
    # Metric names
    "TIMER_ARMED",
    "TIMER_BREACHED",
    "SUPERVISOR_DETACHED",
]
