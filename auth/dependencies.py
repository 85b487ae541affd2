"""
auth/dependencies.py -- Request helpers for the cookie session.

try_get_session() is the soft check used by GET /api/v1/session: it returns
None on any failure instead of raising. The chat route does not use it;
StreamingRelay verifies the token itself so that every failure before the
upstream call maps onto the same SessionExpired.

Neither helper touches the encrypted-credential cookie beyond checking that
it is present. Decryption happens only inside the relay, once per chat
message.

Layer rule: no imports from api/ or relay/.
  auth/dependencies.py may import from fastapi (for Request) because it
  reads cookies off the incoming request.
"""

from __future__ import annotations

from fastapi import Request

from auth.tokens import CREDENTIAL_COOKIE, SESSION_COOKIE, SessionClaims, SessionManager


def session_cookies_present(request: Request) -> bool:
    """True if either half of the cookie pair was sent."""
    return bool(request.cookies.get(SESSION_COOKIE) or request.cookies.get(CREDENTIAL_COOKIE))


def try_get_session(request: Request) -> SessionClaims | None:
    """Return verified session claims, or None.

    A valid token without its encrypted-credential companion is not a session:
    the pair is atomic.
    """
    sessions: SessionManager = request.app.state.sessions
    if not request.cookies.get(CREDENTIAL_COOKIE):
        return None
    return sessions.verify(request.cookies.get(SESSION_COOKIE))
