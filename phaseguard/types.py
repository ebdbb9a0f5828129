"""
Core types for phaseguard.

Defines the request phases, the per-phase delay configuration and the
connection context used to decide which phases apply to a request.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from phaseguard.exceptions import ConfigurationError


class Phase(str, Enum):
    """Distinguishable stages of a request's lifecycle."""

    LOOKUP = "lookup"
    CONNECT = "connect"
    SECURE_CONNECT = "secureConnect"
    SOCKET = "socket"
    SEND = "send"
    RESPONSE = "response"
    REQUEST = "request"

    def __str__(self) -> str:
        return self.value


# DelayConfig field name for every phase
_FIELD_FOR_PHASE: dict[Phase, str] = {
    Phase.LOOKUP: "lookup",
    Phase.CONNECT: "connect",
    Phase.SECURE_CONNECT: "secure_connect",
    Phase.SOCKET: "socket",
    Phase.SEND: "send",
    Phase.RESPONSE: "response",
    Phase.REQUEST: "request",
}


def is_ip(value: str | None) -> bool:
    """
    Check whether a host string is a literal IPv4 or IPv6 address.

    Bracketed IPv6 literals ("[::1]") are accepted.
    """
    if not value:
        return False
    candidate = value
    if candidate.startswith("[") and candidate.endswith("]"):
        candidate = candidate[1:-1]
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return False
    return True


def _validate_delay(key: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigurationError(
            config_key=key,
            expected="a non-negative integer number of milliseconds",
            received=value,
        )


@dataclass(frozen=True)
class DelayConfig:
    """
    Per-phase time budgets in milliseconds.

    A phase left as None is disabled and never gets a timer.

    Attributes:
        lookup: DNS resolution budget.
        connect: Transport connection budget, measured after lookup.
        secure_connect: TLS handshake budget, measured after connect.
        socket: Idle budget enforced by the transport's own idle timer.
        send: Budget from connection until the body upload completes.
        response: Budget from upload completion until the response starts.
        request: Overall budget, armed as soon as the supervisor attaches.

    Example:
        >>> delays = DelayConfig(lookup=100, connect=50, request=3000)
        >>> delays.get(Phase.CONNECT)
        50
        >>> DelayConfig.coerce(1500).request
        1500
    """

    lookup: int | None = None
    connect: int | None = None
    secure_connect: int | None = None
    socket: int | None = None
    send: int | None = None
    response: int | None = None
    request: int | None = None

    def __post_init__(self) -> None:
        for phase, name in _FIELD_FOR_PHASE.items():
            _validate_delay(phase.value, getattr(self, name))

    def get(self, phase: Phase | str) -> int | None:
        """
        Get the budget for a phase.

        Args:
            phase: A Phase member or its wire name.

        Returns:
            Budget in milliseconds, or None if the phase is disabled.
        """
        return getattr(self, _FIELD_FOR_PHASE[Phase(phase)])

    def is_enabled(self, phase: Phase | str) -> bool:
        """Check whether a budget is configured for a phase."""
        return self.get(phase) is not None

    def enabled_phases(self) -> list[Phase]:
        """List the phases that have a budget configured."""
        return [phase for phase in Phase if self.get(phase) is not None]

    def to_dict(self) -> dict[str, int]:
        """Convert to a dictionary keyed by phase wire name, omitting disabled phases."""
        return {phase.value: self.get(phase) for phase in self.enabled_phases()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DelayConfig:
        """
        Create a config from a mapping of phase names to milliseconds.

        Both wire names ("secureConnect") and field names ("secure_connect")
        are accepted.

        Raises:
            ConfigurationError: On unknown or repeated phase names, or
                invalid values.
        """
        field_names = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            try:
                name = _FIELD_FOR_PHASE[Phase(key)]
            except ValueError:
                if key not in field_names:
                    raise ConfigurationError(
                        config_key=str(key),
                        expected=f"one of: {', '.join(p.value for p in Phase)}",
                    ) from None
                name = key
            if name in kwargs:
                raise ConfigurationError(
                    config_key=str(key),
                    expected=f"a single entry for phase '{name}'",
                    received=value,
                )
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def coerce(cls, value: DelayConfig | Mapping[str, Any] | int | None) -> DelayConfig:
        """
        Normalise the accepted delay shorthands into a DelayConfig.

        A bare integer is the overall request budget; None disables everything.
        """
        if value is None:
            return cls()
        if isinstance(value, DelayConfig):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(request=value)
        raise ConfigurationError(
            config_key="delays",
            expected="a DelayConfig, a mapping of phase budgets or an integer",
            received=value,
        )


@dataclass(frozen=True)
class ConnectionContext:
    """
    Connection details used to decide whether lookup and TLS phases apply.

    Attributes:
        host: Host as given by the caller, possibly with a port-less name.
        hostname: Resolved host name; preferred over ``host`` when set.
        protocol: URL scheme with trailing colon, e.g. "https:".
    """

    host: str | None = None
    hostname: str | None = None
    protocol: str | None = None

    @property
    def target(self) -> str | None:
        """The host that will be resolved or connected to."""
        return self.hostname or self.host

    @property
    def is_ip_target(self) -> bool:
        """True when the target is a literal IP address and needs no lookup."""
        return is_ip(self.target)

    def is_secure(self, secure_protocols: tuple[str, ...] = ("https:",)) -> bool:
        """True when the protocol negotiates TLS after connecting."""
        if not self.protocol:
            return False
        protocol = self.protocol.lower()
        if not protocol.endswith(":"):
            protocol += ":"
        return protocol in secure_protocols

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "host": self.host,
            "hostname": self.hostname,
            "protocol": self.protocol,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ConnectionContext:
        """Create a context from a mapping; unrelated keys are ignored."""
        return cls(
            host=data.get("host"),
            hostname=data.get("hostname"),
            protocol=data.get("protocol"),
        )

    @classmethod
    def from_url(cls, url: str) -> ConnectionContext:
        """
        Build a context from a URL.

        Example:
            >>> ctx = ConnectionContext.from_url("https://127.0.0.1:8443/path")
            >>> ctx.is_ip_target, ctx.is_secure()
            (True, True)
        """
        parts = urlsplit(url)
        return cls(
            host=parts.netloc or None,
            hostname=parts.hostname,
            protocol=f"{parts.scheme}:" if parts.scheme else None,
        )
