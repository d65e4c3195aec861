"""
Request and response envelopes.

Wire contract:

    request:  {"path": "<module>:<name>", "args": [...]}

    response: {"return": value}         200
              {"abort": payload|null}   403
              {"error": "Server Error"} 500
              {"error": "Not Found"}    404  (unknown call)
              {"error": "Bad Request"}  400  (malformed request)

Rule: a ResponseEnvelope populates exactly one variant (success XOR
rejection XOR failure). Failure variants carry only a FailureKind; the
underlying exception never travels in the envelope.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from telecall.errors import MalformedRequestError


class ResponseKind(str, Enum):
    """Which variant a ResponseEnvelope carries."""
    SUCCESS = "success"
    REJECTION = "rejection"
    FAILURE = "failure"


class FailureKind(str, Enum):
    """Failure classification, each with its generic caller-facing message."""
    UNEXPECTED = "unexpected"
    UNKNOWN_CALL = "unknown_call"
    MALFORMED_REQUEST = "malformed_request"

    @property
    def message(self) -> str:
        return _FAILURE_MESSAGES[self]

    @property
    def status_code(self) -> int:
        return _FAILURE_STATUS[self]

    @classmethod
    def from_message(cls, message: str) -> "FailureKind":
        """Parse a wire message back into a kind. Unknown text is UNEXPECTED."""
        for kind, text in _FAILURE_MESSAGES.items():
            if text == message:
                return kind
        return cls.UNEXPECTED


_FAILURE_MESSAGES = {
    FailureKind.UNEXPECTED: "Server Error",
    FailureKind.UNKNOWN_CALL: "Not Found",
    FailureKind.MALFORMED_REQUEST: "Bad Request",
}

_FAILURE_STATUS = {
    FailureKind.UNEXPECTED: 500,
    FailureKind.UNKNOWN_CALL: 404,
    FailureKind.MALFORMED_REQUEST: 400,
}

STATUS_SUCCESS = 200
STATUS_REJECTION = 403


def _reject_constant(name: str) -> Any:
    # json accepts NaN and Infinity by default; they are not JSON
    raise ValueError(f"Non-standard JSON constant: {name}")


@dataclass(frozen=True)
class RequestEnvelope:
    """
    One incoming call.

    Attributes:
        path: Call identifier ("<module ref>:<exported name>")
        args: Positional arguments, JSON-compatible values
        metadata: Raw transport metadata (url, method, headers...), opaque here
    """
    path: str
    args: tuple[Any, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, metadata: Mapping[str, Any] | None = None) -> "RequestEnvelope":
        """
        Build an envelope from a decoded request body.

        Raises:
            MalformedRequestError: If the body is not {"path": str, "args": list}
        """
        if not isinstance(data, dict):
            raise MalformedRequestError("Request body must be a JSON object")
        path = data.get("path")
        if not isinstance(path, str) or not path:
            raise MalformedRequestError("Request 'path' must be a non-empty string")
        if "args" not in data:
            raise MalformedRequestError("Request 'args' is missing")
        args = data["args"]
        if not isinstance(args, list):
            raise MalformedRequestError("Request 'args' must be a list")
        return cls(path=path, args=tuple(args), metadata=dict(metadata or {}))

    @classmethod
    def parse(cls, body: Any, metadata: Mapping[str, Any] | None = None) -> "RequestEnvelope":
        """
        Parse a raw body: JSON text, UTF-8 bytes, or an already-decoded mapping.

        Raises:
            MalformedRequestError: If the body cannot be decoded or is malformed
        """
        if isinstance(body, (bytes, bytearray)):
            try:
                body = body.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedRequestError("Request body is not UTF-8") from e
        if isinstance(body, str):
            try:
                body = json.loads(body, parse_constant=_reject_constant)
            except ValueError as e:
                raise MalformedRequestError("Request body is not valid JSON") from e
        return cls.from_dict(body, metadata)

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "args": list(self.args)}


@dataclass(frozen=True)
class ResponseEnvelope:
    """
    Outcome of one dispatch: Success | Rejected(payload) | Failed(kind).

    Use the constructors success(), rejection() and failure_of() rather than
    building instances by hand.

    Attributes:
        kind: Which variant is populated
        value: Return value (SUCCESS only)
        payload: Abort payload, possibly None (REJECTION only)
        failure: Failure classification (FAILURE only)
    """
    kind: ResponseKind
    value: Any = None
    payload: Any = None
    failure: FailureKind | None = None

    def __post_init__(self):
        """Validate that exactly one variant is populated."""
        if self.kind is ResponseKind.FAILURE:
            if self.failure is None:
                raise ValueError("Failure envelope requires a FailureKind")
            if self.value is not None or self.payload is not None:
                raise ValueError("Failure envelope must not carry a value or payload")
        elif self.kind is ResponseKind.SUCCESS:
            if self.payload is not None or self.failure is not None:
                raise ValueError("Success envelope must carry only a value")
        elif self.kind is ResponseKind.REJECTION:
            if self.value is not None or self.failure is not None:
                raise ValueError("Rejection envelope must carry only a payload")
        else:
            raise ValueError(f"Unknown response kind: {self.kind!r}")

    @classmethod
    def success(cls, value: Any) -> "ResponseEnvelope":
        return cls(kind=ResponseKind.SUCCESS, value=value)

    @classmethod
    def rejection(cls, payload: Any = None) -> "ResponseEnvelope":
        return cls(kind=ResponseKind.REJECTION, payload=payload)

    @classmethod
    def failure_of(cls, failure: FailureKind) -> "ResponseEnvelope":
        return cls(kind=ResponseKind.FAILURE, failure=failure)

    @property
    def is_success(self) -> bool:
        return self.kind is ResponseKind.SUCCESS

    @property
    def is_rejection(self) -> bool:
        return self.kind is ResponseKind.REJECTION

    @property
    def is_failure(self) -> bool:
        return self.kind is ResponseKind.FAILURE

    @property
    def status_code(self) -> int:
        """HTTP status for this envelope."""
        if self.is_success:
            return STATUS_SUCCESS
        if self.is_rejection:
            return STATUS_REJECTION
        return self.failure.status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape: exactly one of return/abort/error."""
        if self.is_success:
            return {"return": self.value}
        if self.is_rejection:
            return {"abort": self.payload}
        return {"error": self.failure.message}

    def to_json(self) -> str:
        """
        Serialize to JSON text.

        Raises:
            TypeError: If the value or payload is not JSON-serializable
            ValueError: If it holds NaN or Infinity
        """
        return json.dumps(self.to_dict(), allow_nan=False)

    @classmethod
    def from_dict(cls, data: Any) -> "ResponseEnvelope":
        """
        Rebuild an envelope from its wire shape.

        Raises:
            ValueError: If data is not a mapping with exactly one of
                return/abort/error
        """
        if not isinstance(data, dict):
            raise ValueError("Response envelope must be a JSON object")
        keys = [k for k in ("return", "abort", "error") if k in data]
        if len(keys) != 1 or len(data) != 1:
            raise ValueError(
                "Response envelope must have exactly one of return, abort, error"
            )
        key = keys[0]
        if key == "return":
            return cls.success(data["return"])
        if key == "abort":
            return cls.rejection(data["abort"])
        message = data["error"]
        if not isinstance(message, str):
            raise ValueError("Response 'error' must be a string")
        return cls.failure_of(FailureKind.from_message(message))

    @classmethod
    def from_json(cls, text: str | bytes) -> "ResponseEnvelope":
        """
        Parse JSON text produced by to_json().

        Raises:
            ValueError: If the text is not strict JSON or not an envelope
        """
        return cls.from_dict(json.loads(text, parse_constant=_reject_constant))
