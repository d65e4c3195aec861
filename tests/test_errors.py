"""Tests for telecall error classes and the Abort signal.

Tests cover:
- Error hierarchy
- Attributes carried by errors
- Abort kept apart from TelecallError
"""

import pytest

from telecall.abort import Abort
from telecall.errors import (
    ConfigError,
    ConnectionFailure,
    ContextAccessError,
    DuplicateIdentifierError,
    MalformedRequestError,
    RemoteCallError,
    TelecallError,
    UnknownCallError,
)


class TestHierarchy:
    """All telecall errors share one base."""

    @pytest.mark.parametrize("error_cls", [
        ConfigError,
        ConnectionFailure,
        ContextAccessError,
        DuplicateIdentifierError,
        MalformedRequestError,
        RemoteCallError,
        UnknownCallError,
    ])
    def test_is_telecall_error(self, error_cls):
        assert issubclass(error_cls, TelecallError)

    def test_connection_failure_is_not_remote_call_error(self):
        """Unreachable server must be distinguishable from a failing one."""
        assert not issubclass(ConnectionFailure, RemoteCallError)
        assert not issubclass(RemoteCallError, ConnectionFailure)


class TestErrorAttributes:
    """Errors keep the data they were raised with."""

    def test_duplicate_identifier_keeps_identifier(self):
        error = DuplicateIdentifierError("math:add")
        assert error.identifier == "math:add"
        assert "math:add" in str(error)

    def test_unknown_call_keeps_identifier(self):
        error = UnknownCallError("ghost:call")
        assert error.identifier == "ghost:call"

    def test_remote_call_error_keeps_status_and_message(self):
        error = RemoteCallError(500, "Server Error")
        assert error.status_code == 500
        assert error.message == "Server Error"
        assert str(error) == "Server Error (HTTP 500)"


class TestAbort:
    """Abort is a control-flow signal, not an error."""

    def test_not_a_telecall_error(self):
        assert not issubclass(Abort, TelecallError)

    def test_default_payload_is_none(self):
        assert Abort().payload is None

    def test_payload_kept(self):
        payload = {"notLoggedIn": True}
        assert Abort(payload).payload is payload

    def test_can_be_raised_and_caught(self):
        with pytest.raises(Abort) as exc_info:
            raise Abort("nope")
        assert exc_info.value.payload == "nope"
