"""Tests for request and response envelopes.

Tests cover:
- RequestEnvelope parsing from bytes, text and mappings
- Malformed request bodies
- ResponseEnvelope variant exclusivity
- Wire shapes and status codes per outcome
- Decoding response envelopes on the client side
"""

import json

import pytest

from telecall.envelope import (
    FailureKind,
    RequestEnvelope,
    ResponseEnvelope,
    ResponseKind,
)
from telecall.errors import MalformedRequestError


class TestRequestEnvelope:
    """Decoding incoming request bodies."""

    def test_parse_mapping(self):
        envelope = RequestEnvelope.parse({"path": "math:add", "args": [2, 3]})
        assert envelope.path == "math:add"
        assert envelope.args == (2, 3)

    def test_parse_json_text(self):
        envelope = RequestEnvelope.parse('{"path": "math:add", "args": [2, 3]}')
        assert envelope.to_dict() == {"path": "math:add", "args": [2, 3]}

    def test_parse_utf8_bytes(self):
        envelope = RequestEnvelope.parse('{"path": "greet:hello", "args": ["Zoë"]}'.encode("utf-8"))
        assert envelope.args == ("Zoë",)

    def test_metadata_kept(self):
        envelope = RequestEnvelope.parse(
            {"path": "math:add", "args": []},
            metadata={"method": "POST"},
        )
        assert envelope.metadata == {"method": "POST"}

    def test_empty_args(self):
        assert RequestEnvelope.parse({"path": "todos:list", "args": []}).args == ()

    @pytest.mark.parametrize("body", [
        "not json",
        b"\xff\xfe",
        "[1, 2]",
        "null",
        {"args": []},
        {"path": "", "args": []},
        {"path": 42, "args": []},
        {"path": "math:add"},
        {"path": "math:add", "args": {"a": 1}},
        {"path": "math:add", "args": "2,3"},
    ])
    def test_malformed_bodies(self, body):
        with pytest.raises(MalformedRequestError):
            RequestEnvelope.parse(body)


class TestResponseVariants:
    """Exactly one variant per response, each with its status."""

    def test_success(self):
        envelope = ResponseEnvelope.success(5)
        assert envelope.kind is ResponseKind.SUCCESS
        assert envelope.is_success and not envelope.is_rejection and not envelope.is_failure
        assert envelope.to_dict() == {"return": 5}
        assert envelope.status_code == 200

    def test_success_with_none_value(self):
        assert ResponseEnvelope.success(None).to_dict() == {"return": None}

    def test_rejection_with_payload(self):
        envelope = ResponseEnvelope.rejection({"notLoggedIn": True})
        assert envelope.is_rejection
        assert envelope.to_dict() == {"abort": {"notLoggedIn": True}}
        assert envelope.status_code == 403

    def test_rejection_without_payload(self):
        assert ResponseEnvelope.rejection().to_dict() == {"abort": None}

    @pytest.mark.parametrize("kind,message,status", [
        (FailureKind.UNEXPECTED, "Server Error", 500),
        (FailureKind.UNKNOWN_CALL, "Not Found", 404),
        (FailureKind.MALFORMED_REQUEST, "Bad Request", 400),
    ])
    def test_failures(self, kind, message, status):
        envelope = ResponseEnvelope.failure_of(kind)
        assert envelope.is_failure
        assert envelope.to_dict() == {"error": message}
        assert envelope.status_code == status

    def test_failure_requires_kind(self):
        with pytest.raises(ValueError, match="requires a FailureKind"):
            ResponseEnvelope(kind=ResponseKind.FAILURE)

    def test_success_cannot_carry_payload(self):
        with pytest.raises(ValueError):
            ResponseEnvelope(kind=ResponseKind.SUCCESS, value=1, payload="x")

    def test_rejection_cannot_carry_failure(self):
        with pytest.raises(ValueError):
            ResponseEnvelope(kind=ResponseKind.REJECTION, failure=FailureKind.UNEXPECTED)

    def test_failure_cannot_carry_value(self):
        with pytest.raises(ValueError):
            ResponseEnvelope(kind=ResponseKind.FAILURE, value=1, failure=FailureKind.UNEXPECTED)

    def test_to_json(self):
        assert json.loads(ResponseEnvelope.success([1, "a"]).to_json()) == {"return": [1, "a"]}

    def test_to_json_rejects_unserializable(self):
        with pytest.raises(TypeError):
            ResponseEnvelope.success(object()).to_json()


class TestResponseDecoding:
    """Client-side decoding of response bodies."""

    def test_from_json_success(self):
        envelope = ResponseEnvelope.from_json('{"return": 5}')
        assert envelope == ResponseEnvelope.success(5)

    def test_from_json_abort(self):
        envelope = ResponseEnvelope.from_json(b'{"abort": {"notLoggedIn": true}}')
        assert envelope.payload == {"notLoggedIn": True}

    def test_from_json_error(self):
        envelope = ResponseEnvelope.from_json('{"error": "Not Found"}')
        assert envelope.failure is FailureKind.UNKNOWN_CALL

    def test_unknown_error_text_is_unexpected(self):
        envelope = ResponseEnvelope.from_dict({"error": "Something else"})
        assert envelope.failure is FailureKind.UNEXPECTED

    @pytest.mark.parametrize("data", [
        [],
        {},
        {"return": 1, "abort": None},
        {"return": 1, "extra": True},
        {"error": 500},
        {"value": 1},
    ])
    def test_invalid_shapes(self, data):
        with pytest.raises(ValueError):
            ResponseEnvelope.from_dict(data)

    def test_from_json_not_json(self):
        with pytest.raises(ValueError):
            ResponseEnvelope.from_json("<html>502 Bad Gateway</html>")

    def test_failure_kind_from_message(self):
        assert FailureKind.from_message("Bad Request") is FailureKind.MALFORMED_REQUEST
        assert FailureKind.from_message("Server Error") is FailureKind.UNEXPECTED


class TestStrictJson:
    """NaN and Infinity are not JSON and never cross the wire."""

    @pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
    def test_request_rejects_constant(self, constant):
        with pytest.raises(MalformedRequestError):
            RequestEnvelope.parse('{"path": "math:half", "args": [' + constant + ']}')

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_to_json_rejects_non_finite(self, value):
        with pytest.raises(ValueError):
            ResponseEnvelope.success({"ratio": value}).to_json()

    def test_from_json_rejects_constant(self):
        with pytest.raises(ValueError):
            ResponseEnvelope.from_json('{"return": NaN}')


class TestRoundTrip:
    """Serializing then parsing gives back the same variant and contents."""

    @pytest.mark.parametrize("envelope", [
        ResponseEnvelope.success(5),
        ResponseEnvelope.success(None),
        ResponseEnvelope.success({"todos": [{"id": 1, "done": False}], "ratio": 0.5}),
        ResponseEnvelope.rejection({"notLoggedIn": True}),
        ResponseEnvelope.rejection(),
        ResponseEnvelope.failure_of(FailureKind.UNEXPECTED),
        ResponseEnvelope.failure_of(FailureKind.UNKNOWN_CALL),
        ResponseEnvelope.failure_of(FailureKind.MALFORMED_REQUEST),
    ], ids=lambda e: f"{e.kind.value}-{e.value or e.payload or e.failure}")
    def test_round_trip(self, envelope):
        decoded = ResponseEnvelope.from_json(envelope.to_json())

        assert decoded.kind is envelope.kind
        assert decoded.value == envelope.value
        assert decoded.payload == envelope.payload
        assert decoded.failure is envelope.failure
        assert decoded.status_code == envelope.status_code
        assert decoded == envelope
