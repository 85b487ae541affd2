from dataclasses import dataclass
from enum import Enum
from typing import Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

KEY_PREFIX = "sk-"

MAX_MESSAGE_LENGTH = 4000
DEFAULT_MODEL = "gpt-4o-mini"
ALLOWED_MODELS = ("gpt-4o-mini", "gpt-4o", "gpt-4", "gpt-3.5-turbo")
DEFAULT_DEVELOPER_MESSAGE = "You are a helpful AI assistant."


class KeyType(str, Enum):
    legacy = "legacy"
    project = "project"
    service_account = "serviceAccount"
    admin = "admin"
    unknown = "unknown"


class LivenessStatus(str, Enum):
    live = "live"
    unauthorized = "unauthorized"
    rate_limited = "rate_limited"
    quota_exceeded = "quota_exceeded"
    upstream_error = "upstream_error"
    timeout = "timeout"


@dataclass(frozen=True)
class ValidationResult:
    """Shape classification of a candidate key. Never holds the key itself."""

    is_valid: bool
    key_type: KeyType
    length: int
    format: Optional[str] = None  # "modern" | "legacy"
    error: Optional[str] = None  # "invalid-prefix" | "invalid-format"


@dataclass(frozen=True)
class LivenessResult:
    status: LivenessStatus
    http_status: Optional[int] = None

    @property
    def is_live(self) -> bool:
        return self.status is LivenessStatus.live


@dataclass(frozen=True)
class ErrorMessage:
    title: str
    description: str
    action: str


@dataclass(frozen=True)
class ChatInput:
    message: str
    model: str
    developer_message: str
