"""
Utility functions for telecall.

Logging setup for the "telecall" logger tree, and the scrubbing applied to
handler failure text before it reaches a log line.
"""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

# Record attributes the dispatcher passes through `extra=`
DISPATCH_FIELDS = ("call", "state", "event")

_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(call)s] %(message)s"

_REDACTIONS = (
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    (re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"), "[PHONE]"),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+"), "Bearer [TOKEN]"),
    (re.compile(r"(?i)\b(password|passwd|secret|token|api_key)=\S+"), r"\1=[REDACTED]"),
)


class _CallDefaultFilter(logging.Filter):
    """Give records without a call a placeholder so _PLAIN_FORMAT renders."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "call"):
            record.call = "-"
        return True


def scrub(text: str) -> str:
    """Mask emails, phone numbers, bearer tokens and key=value secrets."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


class ScrubbingFormatter(logging.Formatter):
    """Formatter whose output, tracebacks included, goes through scrub()."""

    def formatException(self, ei) -> str:
        return scrub(super().formatException(ei))

    def format(self, record: logging.LogRecord) -> str:
        # exc_text may already be cached unscrubbed by another handler
        return scrub(super().format(record))


def _make_formatter(log_format: str) -> logging.Formatter:
    if log_format == "structured":
        return StructuredFormatter()
    return ScrubbingFormatter(_PLAIN_FORMAT)


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "structured",
    console_output: bool = True,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Set up logging for the telecall logger tree.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "structured" (JSON lines) or "pretty" (rich console,
                    plain text in the log file)
        console_output: Also log to the console (stderr)
        log_file: Optional file to append log lines to

    Returns:
        Configured "telecall" logger
    """
    logger = logging.getLogger("telecall")
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers = []

    handlers: list[logging.Handler] = []
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(_make_formatter(log_format))
        handlers.append(file_handler)

    if console_output:
        if log_format == "pretty":
            # rich_tracebacks would render exc_info itself, bypassing the formatter
            console_handler = RichHandler(rich_tracebacks=False, show_time=False, markup=False)
            console_handler.setFormatter(ScrubbingFormatter("%(message)s"))
        else:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(StructuredFormatter())
        handlers.append(console_handler)

    for handler in handlers:
        handler.addFilter(_CallDefaultFilter())
        logger.addHandler(handler)
    return logger


class StructuredFormatter(ScrubbingFormatter):
    """One JSON object per record, with the dispatch fields when present."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": scrub(record.getMessage()),
        }
        for name in DISPATCH_FIELDS:
            value = getattr(record, name, None)
            if value is not None and value != "-":
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def sanitize_error_message(error: BaseException, max_length: int = 500) -> str:
    """
    Render an exception for a log line.

    Handler failures can carry user data or credentials in their text.
    Emails, phone numbers, bearer tokens and key=value secrets are masked,
    then the result is cut to max_length.

    Args:
        error: Exception raised by a handler or the dispatcher
        max_length: Maximum length before "..." is appended

    Returns:
        "<ExceptionType>: <scrubbed message>"
    """
    message = scrub(f"{type(error).__name__}: {error}")

    if len(message) > max_length:
        message = message[:max_length] + "..."
    return message
