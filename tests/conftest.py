"""
tests/conftest.py -- Shared test fixtures for KeyRelay integration tests.

This module provides:
  - fixed test secrets, set before any app import
  - upstream(): an httpx.MockTransport-backed fake chat backend
  - client: TestClient over the real app with a patched lifespan that wires
    the fake upstream into the real StreamingRelay
  - open_session(): helper that mints a valid cookie pair without the
    liveness call

The secrets must be in the environment before api.main is imported, because
get_settings() is evaluated at module load.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set secrets before any api/auth/core import so get_settings()
# validates cleanly and tokens minted here verify inside the app.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ENCRYPTION_SECRET", "test-encryption-secret-0123456789abcdef")
os.environ.setdefault("SESSION_SECRET", "test-session-secret-fedcba9876543210xyz")
os.environ.setdefault("SECURE_COOKIES", "false")

import httpx
import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, build_upstream_client
from auth.tokens import CREDENTIAL_COOKIE, SESSION_COOKIE, SessionManager
from core.config import get_settings
from core.crypto import EnvelopeCipher
from relay.stream import StreamingRelay

LEGACY_KEY = "sk-" + "a" * 48
PROJECT_KEY = "sk-proj-" + "A" * 24 + "T3BlbkFJ" + "b" * 24

# Rate limits are exercised separately; the shared in-memory counter would
# otherwise leak between tests in one process.
limiter.enabled = False


class FakeUpstream:
    """Records requests sent to the chat backend and replies with a canned response."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200, content=b"hello"
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def cipher() -> EnvelopeCipher:
    return EnvelopeCipher(get_settings().encryption_secret)


@pytest.fixture
def sessions() -> SessionManager:
    return SessionManager(get_settings().session_secret)


def _patch_lifespan(upstream: FakeUpstream, cipher: EnvelopeCipher, sessions: SessionManager):
    """Return a lifespan that uses the real relay over a mocked transport."""

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        app.state.cipher = cipher
        app.state.sessions = sessions
        app.state.upstream = build_upstream_client(
            settings.chat_timeout_seconds, transport=httpx.MockTransport(upstream.handler)
        )
        app.state.relay = StreamingRelay(
            sessions, cipher, app.state.upstream, settings.chat_url, timeout=settings.chat_timeout_seconds
        )
        yield
        await app.state.upstream.aclose()

    return test_lifespan


@pytest.fixture
def client(upstream: FakeUpstream, cipher: EnvelopeCipher, sessions: SessionManager) -> Generator[TestClient, None, None]:
    """TestClient over the real app with a fake chat backend.

    base_url uses localhost so TrustedHostMiddleware accepts the Host header.
    Function-scoped so the cookie jar never carries state between tests.
    """
    app.router.lifespan_context = _patch_lifespan(upstream, cipher, sessions)
    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as test_client:
        yield test_client


@pytest.fixture
def open_session(cipher: EnvelopeCipher, sessions: SessionManager) -> Callable[..., dict[str, str]]:
    """Return a factory for a valid cookie dict holding the given key."""

    def _make(api_key: str = LEGACY_KEY, key_type: str = "legacy") -> dict[str, str]:
        return {
            SESSION_COOKIE: sessions.issue(key_type, len(api_key)),
            CREDENTIAL_COOKIE: cipher.encrypt(api_key),
        }

    return _make


def set_cookie_headers(resp: httpx.Response) -> list[str]:
    """All Set-Cookie header values of a response."""
    return resp.headers.get_list("set-cookie")


def cookie_deleted(resp: httpx.Response, name: str) -> bool:
    return any(h.startswith(f"{name}=") and "max-age=0" in h.lower() for h in set_cookie_headers(resp))


def cookie_value(resp: httpx.Response, name: str) -> str:
    """A Set-Cookie value with RFC 6265 quoting removed.

    Starlette quotes values holding "/" or "=", which base64 blobs usually do.
    """
    return resp.cookies[name].strip('"')
