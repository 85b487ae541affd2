"""
api/routes/v1/session.py -- Credential entry and session lifecycle endpoints.

Routes:
  POST   /api/v1/session/key  -- validate a key, encrypt it, set both cookies
  GET    /api/v1/session      -- non-secret session status for the UI
  DELETE /api/v1/session      -- delete both cookies (logout); idempotent

Flow for POST /session/key (once per key entry):
  validate_key_format -> check_key_liveness -> EnvelopeCipher.encrypt
  -> SessionManager.issue -> set_session_cookies

Security:
  [K1] POST /session/key is rate-limited per IP. Each accepted request costs a
       provider call made with a user's key.
  [K2] On any failure neither cookie is set. Cookies are written only on the
       final success response object.
  [K3] The raw key is read from a SecretStr exactly once and never logged or
       echoed. Failure bodies carry fixed catalogue text only.
  [K4] Cache-Control: no-store on key submission responses.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ApiKeySubmit,
    KeyInfo,
    KeySubmitFailure,
    KeySubmitResponse,
    MessageResponse,
    SessionStatusResponse,
)
from auth.dependencies import session_cookies_present, try_get_session
from auth.tokens import SessionManager, clear_session_cookies, set_session_cookies
from core.config import get_settings
from core.crypto import EnvelopeCipher
from core.errors import RelayError
from core.fetcher import check_key_liveness, liveness_error
from core.validation import format_error, validate_key_format

logger = logging.getLogger("keyrelay.api.session")

_settings = get_settings()

# Auth policy:
# - POST   /api/v1/session/key: public -- this is how a session is created
# - GET    /api/v1/session:     public -- reports hasValidKey=false when absent
# - DELETE /api/v1/session:     public -- clearing cookies needs no prior auth
router = APIRouter()


def _failure(error: RelayError) -> JSONResponse:
    """Build the structured failure body for the key form. Sets no cookies [K2]."""
    body = KeySubmitFailure(
        code=error.code,
        title=error.title,
        error=error.message,
        field_errors={"apiKey": [error.action]},
    )
    resp = JSONResponse(status_code=error.status_code, content=body.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"  # [K4]
    return resp


@router.post("/session/key", response_model=KeySubmitResponse)
@limiter.limit(_settings.key_submit_rate_limit)  # [K1] must stay below @router.post
def submit_key(request: Request, body: ApiKeySubmit) -> JSONResponse:
    """Validate an API key and, if the provider accepts it, open a session.

    Sync handler: FastAPI runs it in the threadpool, so the blocking liveness
    call does not stall the event loop.
    """
    api_key = body.api_key.get_secret_value().strip()  # [K3]

    result = validate_key_format(api_key)
    if not result.is_valid:
        logger.info("Key rejected by format check: %s (length %d)", result.error, result.length)
        return _failure(format_error(result))

    liveness = check_key_liveness(
        api_key,
        base_url=_settings.provider_base_url,
        timeout=_settings.liveness_timeout_seconds,
    )
    if not liveness.is_live:
        logger.info("Key rejected by liveness check: %s", liveness.status.value)
        return _failure(liveness_error(liveness))

    cipher: EnvelopeCipher = request.app.state.cipher
    sessions: SessionManager = request.app.state.sessions
    encrypted = cipher.encrypt(api_key)
    del api_key
    token = sessions.issue(result.key_type.value, result.length)

    resp = JSONResponse(
        status_code=200,
        content=KeySubmitResponse(key_info=KeyInfo.from_validation(result)).model_dump(by_alias=True),
    )
    set_session_cookies(resp, token, encrypted, secure=_settings.secure_cookies, max_age=sessions.ttl_seconds)
    resp.headers["Cache-Control"] = "no-store"  # [K4]
    logger.info("Session opened for %s key", result.key_type.value)
    return resp


@router.get("/session", response_model=SessionStatusResponse)
async def session_status(request: Request) -> JSONResponse:
    """Report whether the browser holds a valid session, without revealing the key.

    A cookie pair that no longer verifies (expired, tampered, half missing)
    is deleted here so the stale pair cannot be replayed later.
    """
    claims = try_get_session(request)
    resp = JSONResponse(content=SessionStatusResponse.from_claims(claims).model_dump(by_alias=True))
    if claims is None and session_cookies_present(request):
        clear_session_cookies(resp)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.delete("/session", response_model=MessageResponse)
async def delete_session() -> JSONResponse:
    """Delete both session cookies unconditionally."""
    resp = JSONResponse(content=MessageResponse(message="Session cleared.").model_dump())
    clear_session_cookies(resp)
    return resp
