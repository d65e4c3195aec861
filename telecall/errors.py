"""
Error classes for telecall.

These error types classify what went wrong at the dispatch boundary:
- DuplicateIdentifierError: Registration-time conflict (startup defect)
- MalformedRequestError: Transport payload is not a valid request envelope
- UnknownCallError: Call identifier is not registered (stale client, probing)
- ContextAccessError: Handler read its context after a suspension point
- ConnectionFailure: Client could not reach the server at all

Error handling contract:
- The dispatcher converts every handler-level failure into exactly one
  response envelope; nothing escapes unrendered to the transport layer
- Intentional rejection is NOT an error; see telecall.abort.Abort
- Caller-visible text never includes internal failure detail
"""


class TelecallError(Exception):
    """Base exception for telecall."""
    pass


class DuplicateIdentifierError(TelecallError):
    """Raised when a call identifier is registered twice."""

    def __init__(self, identifier: str):
        super().__init__(f"Call identifier already registered: {identifier}")
        self.identifier = identifier


class MalformedRequestError(TelecallError):
    """
    Request payload cannot be parsed into a request envelope.

    Surfaced to the caller as a generic client error. Not reported
    to the bug reporter.
    """
    pass


class UnknownCallError(TelecallError):
    """
    Call identifier not present in the registry.

    Surfaced as a not-found response. Not reported to the bug reporter,
    this is expected misuse (e.g. a client built against older handlers).
    """

    def __init__(self, identifier: str):
        super().__init__(f"Unknown call: {identifier}")
        self.identifier = identifier


class ContextAccessError(TelecallError):
    """
    Context was read outside its access window.

    Either no context is installed for the current task, or the handler
    already passed its first suspension point. This is a handler-authoring
    defect and is reported like any other unexpected failure.
    """
    pass


class ConfigError(TelecallError):
    """Configuration validation error."""
    pass


class RemoteCallError(TelecallError):
    """
    Server was reached but answered with an error envelope.

    Attributes:
        status_code: HTTP status of the response
        message: Generic message from the envelope ("Server Error", ...)
    """

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{message} (HTTP {status_code})")
        self.status_code = status_code
        self.message = message


class ConnectionFailure(TelecallError):
    """
    Server could not be reached, or did not answer like a telecall endpoint.

    Kept apart from RemoteCallError so callers can tell "server reachable
    but failed" from "server unreachable".
    """
    pass
