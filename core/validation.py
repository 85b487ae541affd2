"""
core/validation.py -- Pure input validation: API key shape and chat input.

No I/O, no side effects beyond a log line for model substitution. Runs before
any outbound call so malformed keys and messages are rejected cheaply.
"""

import logging
import re
from typing import Optional

from core.errors import InvalidFormat, InvalidMessage, InvalidPrefix
from core.models import (
    ALLOWED_MODELS,
    DEFAULT_DEVELOPER_MESSAGE,
    DEFAULT_MODEL,
    KEY_PREFIX,
    MAX_MESSAGE_LENGTH,
    ChatInput,
    KeyType,
    ValidationResult,
)

logger = logging.getLogger("keyrelay.validation")

# ---------------------------------------------------------------------------
# Key patterns
# ---------------------------------------------------------------------------

# "T3BlbkFJ" is base64 for "OpenAI"; every modern key carries it between two
# random segments of 20-74 characters.
_SIGNATURE = "T3BlbkFJ"
MODERN_KEY_RE = re.compile(
    rf"^sk-(?P<kind>proj|svcacct|admin)-[A-Za-z0-9_-]{{20,74}}{_SIGNATURE}[A-Za-z0-9_-]{{20,74}}$"
)
LEGACY_KEY_RE = re.compile(r"^sk-[A-Za-z0-9_-]{48}$")

_MODERN_KINDS = {
    "proj": KeyType.project,
    "svcacct": KeyType.service_account,
    "admin": KeyType.admin,
}


def validate_key_format(key: str) -> ValidationResult:
    """Classify a candidate API key by shape alone.

    Rules, in order: fixed prefix, modern sub-kind pattern, legacy 51-char
    pattern. The first rule that decides wins.
    """
    length = len(key)
    if not key.startswith(KEY_PREFIX):
        return ValidationResult(False, KeyType.unknown, length, error="invalid-prefix")

    match = MODERN_KEY_RE.match(key)
    if match:
        return ValidationResult(True, _MODERN_KINDS[match.group("kind")], length, format="modern")

    if LEGACY_KEY_RE.match(key):
        return ValidationResult(True, KeyType.legacy, length, format="legacy")

    return ValidationResult(False, KeyType.unknown, length, error="invalid-format")


def format_error(result: ValidationResult) -> InvalidFormat:
    """Map a failed ValidationResult onto the matching client error."""
    if result.error == "invalid-prefix":
        return InvalidPrefix()
    return InvalidFormat()


# ---------------------------------------------------------------------------
# Chat input
# ---------------------------------------------------------------------------


def resolve_model(requested: Optional[str]) -> str:
    """Return the requested model if allow-listed, else the default.

    Substitution is silent for the client and logged here for operators.
    """
    if requested in ALLOWED_MODELS:
        return requested
    if requested:
        logger.warning('Invalid model "%s" requested, falling back to "%s"', requested[:64], DEFAULT_MODEL)
    return DEFAULT_MODEL


def prepare_chat(message: Optional[str], model: Optional[str] = None, developer_message: Optional[str] = None) -> ChatInput:
    """Validate one inbound chat message and normalize its options.

    Raises InvalidMessage for an empty (after trim) or over-long message.
    """
    if not message or not message.strip():
        raise InvalidMessage("Message is required.")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise InvalidMessage(f"Message too long (max {MAX_MESSAGE_LENGTH} characters).")

    return ChatInput(
        message=message.strip(),
        model=resolve_model(model),
        developer_message=developer_message or DEFAULT_DEVELOPER_MESSAGE,
    )
