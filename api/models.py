"""
api/models.py -- Pydantic models for the KeyRelay HTTP surface.

Request and response bodies for the /api/v1 routes. The frozen dataclasses in
core/models.py stay transport-free; the from_* classmethods below convert
them at the route boundary.

Wire names are camelCase (the browser client's convention); Python attribute
names stay snake_case via Field(alias=...). Responses are dumped with
by_alias=True.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from auth.tokens import SessionClaims
from core.models import ValidationResult

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ApiKeySubmit(BaseModel):
    """Request body for POST /api/v1/session/key.

    SecretStr keeps the key out of repr(), str() and validation error
    payloads, so a stray log line or 422 response cannot echo it.
    """

    model_config = ConfigDict(populate_by_name=True)

    api_key: SecretStr = Field(alias="apiKey", max_length=512)


class ChatRequest(BaseModel):
    """Request body for POST /api/v1/chat/stream.

    message length and emptiness are checked by core.validation.prepare_chat
    after the session is verified, so an unauthenticated caller always gets
    401 first. model is free text here; unknown values fall back silently.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    model: Optional[str] = Field(default=None, max_length=100)
    developer_message: Optional[str] = Field(default=None, alias="developerMessage", max_length=4000)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class KeyInfo(BaseModel):
    """Non-secret description of an accepted key."""

    model_config = ConfigDict(frozen=True)

    type: str
    length: int
    format: Optional[str] = None

    @classmethod
    def from_validation(cls, result: ValidationResult) -> "KeyInfo":
        return cls(type=result.key_type.value, length=result.length, format=result.format)


class KeySubmitResponse(BaseModel):
    """Success body for POST /api/v1/session/key."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: bool = True
    key_info: KeyInfo = Field(alias="keyInfo")


class KeySubmitFailure(BaseModel):
    """Failure body for POST /api/v1/session/key.

    fieldErrors maps the form field name to the actionable messages the UI
    shows under it.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: bool = False
    code: str
    title: str
    error: str
    field_errors: dict[str, list[str]] = Field(alias="fieldErrors")


class SessionStatusResponse(BaseModel):
    """Response for GET /api/v1/session."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    has_valid_key: bool = Field(alias="hasValidKey")
    key_type: Optional[str] = Field(default=None, alias="keyType")
    key_length: Optional[int] = Field(default=None, alias="keyLength")
    expires_at: Optional[int] = Field(default=None, alias="expiresAt")

    @classmethod
    def from_claims(cls, claims: Optional[SessionClaims]) -> "SessionStatusResponse":
        if claims is None:
            return cls(has_valid_key=False)
        return cls(
            has_valid_key=claims.has_valid_key,
            key_type=claims.key_type,
            key_length=claims.key_length,
            expires_at=claims.expires_at,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """code is stable for clients to branch on; detail is the suggested next step."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """{"error": {...}} body shared by every JSON failure except key submission."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
