"""
core/redaction.py -- Secret scrubbing for log output.

sanitize_string() is a pure function that replaces provider keys, bearer
tokens, authorization headers and api_key fragments with fixed markers.
RedactingFilter applies it to every log record, so a key that slips into an
exception message or a provider error body is scrubbed before any handler
formats it.

Install once at process start with install_redaction(); api/main.py and the
CLI both do.
"""

import logging
import re

_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"sk-[A-Za-z0-9_-]{20,}"), "[API_KEY_REDACTED]"),
    (re.compile(r"Bearer\s+[A-Za-z0-9._~+/=-]+", re.IGNORECASE), "Bearer [TOKEN_REDACTED]"),
    (re.compile(r"authorization:\s*[^\s,]+", re.IGNORECASE), "authorization: [AUTH_REDACTED]"),
    (re.compile(r"api[_-]?key[\"']?\s*[:=]\s*[\"']?[A-Za-z0-9_-]+", re.IGNORECASE), "api_key: [KEY_REDACTED]"),
]


def sanitize_string(text: str) -> str:
    """Return text with every recognizable secret replaced by a marker."""
    for pattern, replacement in _PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class RedactingFilter(logging.Filter):
    """Rewrite each record's message with secrets removed.

    The record is rendered once (msg % args), scrubbed, and stored back with
    args cleared so downstream formatters do not re-interpolate.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            rendered = record.getMessage()
        except (TypeError, ValueError):
            rendered = str(record.msg)
        record.msg = sanitize_string(rendered)
        record.args = None
        if record.exc_info and record.exc_info[1] is not None:
            # Formatter renders exc_text from exc_info; pre-render and scrub it.
            record.exc_text = sanitize_string(logging.Formatter().formatException(record.exc_info))
        return True


def install_redaction() -> None:
    """Attach a RedactingFilter to every handler on the root logger.

    Filters on handlers (not loggers) see records from all child loggers,
    including third-party ones such as httpx and uvicorn.
    """
    redactor = RedactingFilter()
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(redactor)
