"""
Bug reporter - process-wide sink for unexpected failures.

The dispatcher reports every unexpected failure exactly once; rejections
(Abort), unknown calls and malformed requests are never reported. Hosts
plug monitoring in at startup:

    from telecall import on_bug

    on_bug(lambda detail: sentry_sdk.capture_exception(detail.error))

Listeners are decoupled from dispatch: swapping monitoring never touches
dispatch logic, and a failing listener never changes the response.
"""

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailureDetail:
    """
    Full detail of one unexpected failure. Server-side only.

    Attributes:
        error: The exception raised by the handler or dispatcher
        call: Call identifier being dispatched, if it was known
        traceback: Formatted traceback text
        ts: UTC timestamp (ISO 8601)
    """
    error: BaseException
    call: str | None = None
    traceback: str = ""
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_exception(cls, error: BaseException, call: str | None = None) -> "FailureDetail":
        text = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return cls(error=error, call=call, traceback=text)


BugListener = Callable[[FailureDetail], None]


class BugReporter:
    """
    Fan-out of FailureDetail to registered listeners.

    Usage:
        reporter = BugReporter()
        unsubscribe = reporter.on_bug(my_listener)
        reporter.report(FailureDetail.from_exception(err, call="math:add"))
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: list[BugListener] = []

    def on_bug(self, listener: BugListener) -> Callable[[], None]:
        """
        Register a listener.

        Args:
            listener: Called with a FailureDetail for each unexpected failure

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def report(self, detail: FailureDetail) -> None:
        """
        Deliver one failure to every listener.

        A listener raising is logged and does not stop the other listeners.
        """
        for listener in list(self._listeners):
            try:
                listener(detail)
            except Exception:
                logger.exception("Bug listener %r failed", listener)

    def clear(self) -> None:
        """Remove all listeners (process teardown, tests)."""
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


# Process-wide reporter used when a Dispatcher is not given its own
default_reporter = BugReporter()


def on_bug(listener: BugListener) -> Callable[[], None]:
    """Register a listener on the process-wide reporter."""
    return default_reporter.on_bug(listener)


on_unexpected_failure = on_bug
