"""
auth/tokens.py -- Session token issuing/verification and cookie helpers.

Security design decisions:
  JWT: python-jose with HS256, signed with SESSION_SECRET (distinct from the
       ENCRYPTION_SECRET that protects the credential blob). The payload holds
       only non-secret metadata -- key type, key length, expiry -- so a stolen
       or forged token is useless without the encrypted-credential cookie AND
       the server's encryption secret.

  Verification order: jose verifies the signature before it decodes any
       claim, then checks the standard exp claim. On top of that we re-check
       the embedded expiresAt (epoch ms) and the claim shapes. Any failure
       returns None -- the caller turns that into SessionExpired.

  Cookies: two httpOnly, samesite=lax cookies sharing one max_age, so the
       browser drops the pair together. They are always set and deleted as a
       pair; one without the other is treated as no session.

Layer rule: no imports from api/ or relay/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

logger = logging.getLogger("keyrelay.auth")

_ALGORITHM = "HS256"

SESSION_COOKIE = "session-token"
CREDENTIAL_COOKIE = "encrypted-credential"
DEFAULT_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class SessionClaims:
    """Verified session metadata. Safe to return to the browser."""

    has_valid_key: bool
    key_type: str
    key_length: int
    expires_at: int  # epoch milliseconds
    issued_at: int  # epoch seconds


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class SessionManager:
    """Issue and verify signed session tokens.

    Constructed once at startup from Settings and stored on app.state.
    """

    def __init__(self, secret: str, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        if not secret:
            raise ValueError("session secret must not be empty")
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, key_type: str, key_length: int, now: datetime | None = None) -> str:
        """Encode a signed token describing a freshly validated key.

        Args:
            key_type:   Classification from validate_key_format().
            key_length: Length of the key in characters.
            now:        Issue time override for tests; defaults to UTC now.
        """
        issued = now or datetime.now(timezone.utc)
        expires = issued + timedelta(seconds=self.ttl_seconds)
        payload = {
            "hasValidKey": True,
            "keyType": key_type,
            "keyLength": key_length,
            "expiresAt": _epoch_ms(expires),
            "iat": int(issued.timestamp()),
            "exp": int(expires.timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str | None, now: datetime | None = None) -> SessionClaims | None:
        """Decode and verify a session token. Returns None on any failure.

        Returning None (rather than raising) keeps the caller simple: any
        invalid, tampered or expired token means "no session".
        """
        if not token:
            return None
        try:
            payload = jwt.decode(token, self._secret, algorithms=[_ALGORITHM])
        except JWTError as e:
            logger.info("Session token rejected: %s", type(e).__name__)
            return None

        expires_at = payload.get("expiresAt")
        key_length = payload.get("keyLength")
        if not isinstance(expires_at, int) or not isinstance(key_length, int):
            return None
        if not isinstance(payload.get("keyType"), str) or payload.get("hasValidKey") is not True:
            return None

        current = now or datetime.now(timezone.utc)
        if expires_at <= _epoch_ms(current):
            logger.info("Session token past expiresAt")
            return None

        return SessionClaims(
            has_valid_key=True,
            key_type=payload["keyType"],
            key_length=key_length,
            expires_at=expires_at,
            issued_at=int(payload.get("iat", 0)),
        )


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookies(
    response,
    token: str,
    encrypted_blob: str,
    secure: bool,
    max_age: int = DEFAULT_TTL_SECONDS,
) -> None:
    """Write the session token and encrypted credential as httpOnly cookies.

    httponly=True: client script cannot read either cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for the
        chat and key endpoints, which are all POST/DELETE.
    secure: only sent over HTTPS outside debug mode.
    max_age: matches the token lifetime so both cookies expire together.
    """
    for name, value in ((SESSION_COOKIE, token), (CREDENTIAL_COOKIE, encrypted_blob)):
        response.set_cookie(
            name,
            value=value,
            httponly=True,
            samesite="lax",
            secure=secure,
            max_age=max_age,
            path="/",
        )


def clear_session_cookies(response) -> None:
    """Delete both session cookies. Safe to call when neither is present."""
    response.delete_cookie(SESSION_COOKIE, path="/", httponly=True, samesite="lax")
    response.delete_cookie(CREDENTIAL_COOKIE, path="/", httponly=True, samesite="lax")
