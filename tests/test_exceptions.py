"""Tests for the phaseguard exception hierarchy."""

from __future__ import annotations

import pickle

import pytest

from phaseguard.exceptions import (
    ConfigurationError,
    ConnectionTeardownError,
    PhaseguardError,
    PhaseTimeoutError,
    is_benign_teardown,
)


class TestPhaseTimeoutError:
    """Tests for the breach error value."""

    def test_fields(self):
        error = PhaseTimeoutError("connect", 250)
        assert error.phase == "connect"
        assert error.threshold_ms == 250
        assert error.code == "ETIMEDOUT"
        assert str(error) == "Timeout awaiting 'connect' for 250ms"
        assert isinstance(error, PhaseguardError)

    def test_immutable(self):
        error = PhaseTimeoutError("lookup", 1)
        with pytest.raises(AttributeError):
            error.phase = "connect"
        with pytest.raises(AttributeError):
            error.threshold_ms = 2
        with pytest.raises(AttributeError):
            del error.phase

    def test_can_be_raised_and_chained(self):
        with pytest.raises(PhaseTimeoutError) as exc_info:
            try:
                raise ValueError("inner")
            except ValueError as e:
                raise PhaseTimeoutError("send", 5) from e
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_to_dict(self):
        data = PhaseTimeoutError("response", 10).to_dict()
        assert data == {
            "error_type": "PhaseTimeoutError",
            "message": "Timeout awaiting 'response' for 10ms",
            "code": "ETIMEDOUT",
            "phase": "response",
            "threshold_ms": 10,
        }

    def test_pickle(self):
        restored = pickle.loads(pickle.dumps(PhaseTimeoutError("socket", 1)))
        assert restored.phase == "socket"
        assert restored.threshold_ms == 1


class TestConfigurationError:
    """Tests for ConfigurationError."""

    def test_message(self):
        error = ConfigurationError(config_key="lookup", expected="a number", received=-1)
        assert error.message == "Configuration error for 'lookup': expected a number, got -1"
        assert error.details["received"] == "-1"
        assert "Details" in str(error)

    def test_to_dict(self):
        data = ConfigurationError(config_key="delays").to_dict()
        assert data["error_type"] == "ConfigurationError"
        assert data["details"]["config_key"] == "delays"


class TestTeardownClassification:
    """Tests for benign teardown detection."""

    def test_teardown_is_benign(self):
        assert is_benign_teardown(ConnectionTeardownError())
        assert ConnectionTeardownError().reason == "socket hang up"

    @pytest.mark.parametrize(
        "error",
        [None, OSError("socket hang up"), ConnectionResetError(), PhaseTimeoutError("request", 1)],
    )
    def test_other_errors_are_not(self, error):
        assert not is_benign_teardown(error)
