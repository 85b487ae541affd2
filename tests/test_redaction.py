"""Unit tests for core/redaction.py -- sanitize_string() and RedactingFilter."""

import logging
import sys

import pytest

from core.redaction import RedactingFilter, install_redaction, sanitize_string

_KEY = "sk-" + "A1b2" * 12


class TestSanitizeString:
    @pytest.mark.parametrize(
        "text, marker",
        [
            (f"key was {_KEY}", "[API_KEY_REDACTED]"),
            ("sk-proj-" + "x" * 40, "[API_KEY_REDACTED]"),
            ("Authorization: Bearer abc.def.ghi", "[AUTH_REDACTED]"),
            ("sent Bearer eyJhbGciOi.payload.sig", "Bearer [TOKEN_REDACTED]"),
            ('{"api_key": "live_123"}', "api_key: [KEY_REDACTED]"),
            ("apiKey=abc123", "api_key: [KEY_REDACTED]"),
        ],
    )
    def test_secrets_replaced(self, text, marker):
        cleaned = sanitize_string(text)
        assert marker in cleaned

    def test_key_fully_removed(self):
        assert _KEY not in sanitize_string(f"prefix {_KEY} suffix")

    def test_short_sk_fragment_untouched(self):
        assert sanitize_string("task-sk-12") == "task-sk-12"

    def test_plain_text_untouched(self):
        text = "Using model gpt-4o-mini (message length 12)"
        assert sanitize_string(text) == text


class TestRedactingFilter:
    def _record(self, msg, args=None, exc_info=None) -> logging.LogRecord:
        return logging.LogRecord("keyrelay.test", logging.WARNING, __file__, 1, msg, args, exc_info)

    def test_args_are_rendered_then_scrubbed(self):
        record = self._record("upstream said %s", (_KEY,))
        assert RedactingFilter().filter(record) is True
        assert _KEY not in record.getMessage()
        assert record.args is None

    def test_exception_text_scrubbed(self):
        try:
            raise ValueError(f"bad key {_KEY}")
        except ValueError:
            record = self._record("failed", exc_info=sys.exc_info())
        RedactingFilter().filter(record)
        assert _KEY not in record.exc_text
        assert "[API_KEY_REDACTED]" in record.exc_text

    def test_install_is_idempotent(self):
        root = logging.getLogger()
        handler = logging.StreamHandler()
        root.addHandler(handler)
        try:
            install_redaction()
            install_redaction()
            assert sum(isinstance(f, RedactingFilter) for f in handler.filters) == 1
        finally:
            root.removeHandler(handler)
