"""
Custom exceptions for phaseguard.

This module defines the exception hierarchy for the package. Only
PhaseTimeoutError is ever produced by the supervisor itself; the other
types describe caller mistakes or classify errors reported by transports.
"""

from __future__ import annotations

from typing import Any


class PhaseguardError(Exception):
    """
    Base exception for all phaseguard errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context about the error.

    Example:
        >>> try:
        ...     supervisor.attach(request, {"lookup": -1}, context)
        ... except PhaseguardError as e:
        ...     logger.error(f"phaseguard error: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(PhaseguardError):
    """
    Raised when a delay or supervisor configuration is invalid.

    Attributes:
        config_key: The configuration key that has an issue.
        expected: What was expected for this configuration.
        received: What was actually provided.

    Example:
        >>> raise ConfigurationError(
        ...     config_key="lookup",
        ...     expected="a non-negative integer number of milliseconds",
        ...     received=-5,
        ... )
    """

    def __init__(
        self,
        config_key: str,
        expected: str | None = None,
        received: Any = None,
    ) -> None:
        self.config_key = config_key
        self.expected = expected
        self.received = received

        message = f"Configuration error for '{config_key}'"
        if expected:
            message += f": expected {expected}"
        if received is not None:
            message += f", got {received!r}"

        details = {
            "config_key": config_key,
            "expected": expected,
            "received": str(received) if received is not None else None,
        }
        super().__init__(message, details)


class PhaseTimeoutError(PhaseguardError):
    """
    Raised on the request's error channel when a phase budget is breached.

    Instances are immutable once constructed. The message mirrors the
    phase and threshold so logs read the same as the structured fields.

    Attributes:
        phase: Name of the phase whose budget was exceeded.
        threshold_ms: The configured budget in milliseconds.
        code: Always "ETIMEDOUT".

    Example:
        >>> err = PhaseTimeoutError("lookup", 1)
        >>> str(err)
        "Timeout awaiting 'lookup' for 1ms"
        >>> err.code
        'ETIMEDOUT'
    """

    code = "ETIMEDOUT"

    def __init__(self, phase: str, threshold_ms: int) -> None:
        object.__setattr__(self, "_frozen", False)
        self.phase = str(phase)
        self.threshold_ms = threshold_ms
        super().__init__(f"Timeout awaiting '{self.phase}' for {threshold_ms}ms")
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        # Interpreter-managed slots (__traceback__, __notes__, ...) stay writable.
        if getattr(self, "_frozen", False) and not name.startswith("__"):
            raise AttributeError(f"{type(self).__name__} is immutable")
        object.__setattr__(self, name, value)

    def __delattr__(self, name: str) -> None:
        if not name.startswith("__"):
            raise AttributeError(f"{type(self).__name__} is immutable")
        object.__delattr__(self, name)

    def __str__(self) -> str:
        return self.message

    def __reduce__(self) -> tuple[Any, ...]:
        return (type(self), (self.phase, self.threshold_ms))

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "phase": self.phase,
            "threshold_ms": self.threshold_ms,
        }


class ConnectionTeardownError(PhaseguardError):
    """
    Reported by a transport when a connection is torn down in an expected way.

    The typical case is a half-close racing a response that has just
    completed. Transports emit this type instead of a generic error so the
    supervisor can recognise the condition without inspecting message text.

    Attributes:
        reason: Short machine-readable description of the teardown.
    """

    def __init__(self, reason: str = "socket hang up") -> None:
        self.reason = reason
        super().__init__(reason, {"reason": reason})


def is_benign_teardown(error: BaseException | None) -> bool:
    """Return True when ``error`` describes an expected connection teardown."""
    return isinstance(error, ConnectionTeardownError)
