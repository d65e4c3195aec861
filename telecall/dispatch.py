"""
Dispatcher - runs one call from request envelope to response envelope.

State machine, one independent run per request:

    RECEIVED -> RESOLVING -> CONTEXT_INSTALLED -> VALIDATING -> EXECUTING
             -> RESPONDING -> DONE
    any state -> FAILED

Outcome classification:
- handler returns            -> success
- Abort (handler or shield)  -> rejection, not reported
- malformed request          -> failure(MALFORMED_REQUEST), not reported
- unknown call identifier    -> failure(UNKNOWN_CALL), not reported
- anything else              -> failure(UNEXPECTED), reported to the bug
                                reporter exactly once

Nothing mutable is shared between runs except the read-only registry
snapshot; the context binding lives in the run's own task context.
"""

import logging
from enum import Enum
from typing import Any, Mapping

from telecall.abort import Abort
from telecall.bugs import BugReporter, FailureDetail, default_reporter
from telecall.context import call_in_slot, install
from telecall.envelope import FailureKind, RequestEnvelope, ResponseEnvelope
from telecall.errors import MalformedRequestError
from telecall.registry import CallRegistry
from telecall.shield import check
from telecall.utils import sanitize_error_message

logger = logging.getLogger(__name__)


class DispatchState(str, Enum):
    """States of one dispatch run."""
    RECEIVED = "received"
    RESOLVING = "resolving"
    CONTEXT_INSTALLED = "context_installed"
    VALIDATING = "validating"
    EXECUTING = "executing"
    RESPONDING = "responding"
    DONE = "done"
    FAILED = "failed"


class _DispatchRun:
    """Per-request state holder. Never shared between requests."""

    def __init__(self) -> None:
        self.state = DispatchState.RECEIVED
        self.call: str | None = None

    def advance(self, state: DispatchState) -> None:
        logger.debug(
            "%s -> %s", self.state.value, state.value,
            extra={"call": self.call, "state": state.value},
        )
        self.state = state


class Dispatcher:
    """
    Resolves, validates and invokes registered handlers.

    Usage:
        dispatcher = Dispatcher(registry)
        response = await dispatcher.handle(
            {"path": "math:add", "args": [2, 3]},
            context={"user": current_user},
        )
        response.to_dict()  # {"return": 5}
    """

    def __init__(self, registry: CallRegistry, bug_reporter: BugReporter | None = None):
        """
        Args:
            registry: Registry to resolve calls from
            bug_reporter: Sink for unexpected failures (default: process-wide)
        """
        self.registry = registry
        self.bug_reporter = bug_reporter if bug_reporter is not None else default_reporter

    async def handle(
        self,
        request: RequestEnvelope | Mapping[str, Any] | str | bytes,
        context: Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ResponseEnvelope:
        """
        Dispatch one request.

        Never raises for handler-level failures: every outcome is rendered
        into exactly one ResponseEnvelope variant.

        Args:
            request: RequestEnvelope, decoded body mapping, or raw JSON body
            context: Context mapping exposed to the handler via get_context()
            metadata: Transport metadata kept on the parsed envelope

        Returns:
            ResponseEnvelope (success, rejection, or failure)
        """
        run = _DispatchRun()
        try:
            return await self._run(run, request, context, metadata)
        except Exception as error:
            # Failure in dispatch internals rather than in the handler
            return self._unexpected(run, error)

    async def _run(
        self,
        run: _DispatchRun,
        request: RequestEnvelope | Mapping[str, Any] | str | bytes,
        context: Mapping[str, Any] | None,
        metadata: Mapping[str, Any] | None,
    ) -> ResponseEnvelope:
        try:
            if isinstance(request, RequestEnvelope):
                envelope = request
            else:
                envelope = RequestEnvelope.parse(request, metadata)
        except MalformedRequestError as e:
            logger.info("Malformed request: %s", e, extra={"state": run.state.value, "event": "malformed"})
            return self._fail(run, FailureKind.MALFORMED_REQUEST)

        run.call = envelope.path
        run.advance(DispatchState.RESOLVING)
        registered = self.registry.resolve(envelope.path)
        if registered is None:
            logger.info("Unknown call: %s", envelope.path, extra={"call": run.call, "event": "unknown_call"})
            return self._fail(run, FailureKind.UNKNOWN_CALL)

        try:
            with install(context) as slot:
                run.advance(DispatchState.CONTEXT_INSTALLED)
                run.advance(DispatchState.VALIDATING)
                if registered.schema is not None:
                    rejection = check(registered.schema, envelope.args)
                    if rejection is not None:
                        logger.info(
                            "Arguments rejected by shield for %s", run.call,
                            extra={"call": run.call, "event": "shield_rejected"},
                        )
                        raise rejection
                run.advance(DispatchState.EXECUTING)
                value = await call_in_slot(registered.handler, envelope.args, slot)
        except Abort as abort:
            run.advance(DispatchState.RESPONDING)
            logger.info("Call %s aborted", run.call, extra={"call": run.call, "event": "abort"})
            response = ResponseEnvelope.rejection(abort.payload)
        except Exception as error:
            return self._unexpected(run, error)
        else:
            run.advance(DispatchState.RESPONDING)
            response = ResponseEnvelope.success(value)

        try:
            response.to_json()
        except (TypeError, ValueError) as error:
            # Handler returned (or aborted with) something the wire cannot carry
            return self._unexpected(run, error)

        run.advance(DispatchState.DONE)
        return response

    def _fail(self, run: _DispatchRun, kind: FailureKind) -> ResponseEnvelope:
        run.advance(DispatchState.FAILED)
        return ResponseEnvelope.failure_of(kind)

    def _unexpected(self, run: _DispatchRun, error: Exception) -> ResponseEnvelope:
        logger.error(
            "Call %s failed in state %s: %s",
            run.call, run.state.value, sanitize_error_message(error),
            exc_info=error,
            extra={"call": run.call, "event": "unexpected_failure"},
        )
        run.advance(DispatchState.FAILED)
        self.bug_reporter.report(FailureDetail.from_exception(error, call=run.call))
        return ResponseEnvelope.failure_of(FailureKind.UNEXPECTED)

    def report_failure(self, error: Exception, call: str | None = None) -> ResponseEnvelope:
        """
        Render a failure that happened around dispatch (e.g. in the host's
        context provider) exactly like a handler failure: logged, reported
        once, generic response.
        """
        run = _DispatchRun()
        run.call = call
        return self._unexpected(run, error)

    async def call(
        self,
        identifier: str,
        *args: Any,
        context: Mapping[str, Any] | None = None,
    ) -> ResponseEnvelope:
        """Dispatch a call by identifier and positional arguments."""
        return await self.handle(RequestEnvelope(path=identifier, args=tuple(args)), context)
