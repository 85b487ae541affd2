"""
core/errors.py -- Error taxonomy for the credential and relay pipeline.

Every client-visible failure is a RelayError subclass. The exception carries
the HTTP status, a stable machine code and the title/description/action
triple from ERROR_MESSAGES. api/main.py turns these into the JSON error
envelope; nothing else in the codebase builds error responses by hand.

DecryptionFailed is the one internal-only member: the relay remaps it to
SessionExpired before it can reach a handler, so a client can never tell
"bad cookie" apart from "no cookie".

Security note: messages are fixed strings. Provider error bodies and
exception text are never copied into them.

Layer rule: no imports from api/, auth/, or relay/.
"""

from __future__ import annotations

from core.models import ErrorMessage

# ---------------------------------------------------------------------------
# Catalogue -- one entry per error code
# ---------------------------------------------------------------------------

ERROR_MESSAGES: dict[str, ErrorMessage] = {
    "invalid_prefix": ErrorMessage(
        title="Invalid API Key Prefix",
        description='OpenAI API keys start with "sk-".',
        action="Copy the full key from your OpenAI dashboard, including the sk- prefix.",
    ),
    "invalid_format": ErrorMessage(
        title="Invalid API Key Format",
        description="The API key does not match any known OpenAI key format.",
        action="Check that the key was copied completely, or generate a new key.",
    ),
    "invalid_message": ErrorMessage(
        title="Invalid Message",
        description="Message is required.",
        action="Type a message before sending.",
    ),
    "unauthorized": ErrorMessage(
        title="Invalid API Key",
        description="The API key was rejected by OpenAI.",
        action="Invalid or expired API key. Generate a new key from your OpenAI dashboard.",
    ),
    "session_expired": ErrorMessage(
        title="Session Expired",
        description="API key session expired. Please re-authenticate.",
        action="Enter your API key again to start a new session.",
    ),
    "invalid_credential": ErrorMessage(
        title="API Key Rejected",
        description="Invalid API key. Please re-authenticate.",
        action="The stored key was revoked or expired. Enter a new API key.",
    ),
    "rate_limited": ErrorMessage(
        title="Rate Limited",
        description="OpenAI is rate limiting this API key.",
        action="Wait a minute before retrying.",
    ),
    "quota_exceeded": ErrorMessage(
        title="Quota Exceeded",
        description="This API key has no remaining quota.",
        action="Check your OpenAI billing settings and usage limits.",
    ),
    "upstream_error": ErrorMessage(
        title="Service Error",
        description="The AI service returned an error.",
        action="Please try again in a moment.",
    ),
    "upstream_timeout": ErrorMessage(
        title="Request Timed Out",
        description="The AI service did not respond in time.",
        action="Please try again.",
    ),
    "decryption_failed": ErrorMessage(
        title="Session Error",
        description="Failed to decrypt credential.",
        action="Enter your API key again.",
    ),
}

_GENERIC = ErrorMessage(
    title="Request Failed",
    description="Something went wrong.",
    action="Please try again.",
)


def get_error_details(code: str) -> ErrorMessage:
    """Return the title/description/action triple for an error code.

    Unknown codes fall back to a generic triple so callers never KeyError.
    """
    return ERROR_MESSAGES.get(code, _GENERIC)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RelayError(Exception):
    """Base class for failures that map onto a structured client response."""

    code = "error"
    status_code = 500
    # When True the handler deletes both session cookies on the response.
    clear_session = False

    def __init__(self, message: str | None = None) -> None:
        details = get_error_details(self.code)
        self.title = details.title
        self.message = message or details.description
        self.action = details.action
        super().__init__(self.message)


class InvalidFormat(RelayError):
    code = "invalid_format"
    status_code = 400


class InvalidPrefix(InvalidFormat):
    code = "invalid_prefix"


class InvalidMessage(RelayError):
    code = "invalid_message"
    status_code = 400


class Unauthorized(RelayError):
    code = "unauthorized"
    status_code = 401


class SessionExpired(RelayError):
    code = "session_expired"
    status_code = 401
    clear_session = True


class InvalidCredential(RelayError):
    """The stored key was accepted at entry time but the upstream now rejects it."""

    code = "invalid_credential"
    status_code = 401
    clear_session = True


class RateLimited(RelayError):
    code = "rate_limited"
    status_code = 429


class QuotaExceeded(RelayError):
    code = "quota_exceeded"
    status_code = 403


class UpstreamError(RelayError):
    code = "upstream_error"
    status_code = 502

    def __init__(self, upstream_status: int | None = None) -> None:
        self.upstream_status = upstream_status
        message = None
        if upstream_status is not None:
            message = f"The AI service returned an error ({upstream_status})."
        super().__init__(message)


class UpstreamTimeout(UpstreamError):
    code = "upstream_timeout"
    status_code = 504

    def __init__(self) -> None:
        super().__init__(None)


class DecryptionFailed(RelayError):
    """Raised by EnvelopeCipher.decrypt for every failure mode, with one fixed message."""

    code = "decryption_failed"
    status_code = 401
