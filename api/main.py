"""
api/main.py -- FastAPI application entry point for KeyRelay.

Run with:  uvicorn api.main:app --reload
           python main.py serve

Middleware (Starlette runs the last one added first):
  log_requests           -- one access-log line per request
  SlowAPIMiddleware      -- per-route limits from api.limiter
  CORSMiddleware         -- credentialed CORS for the configured UI origins
  TrustedHostMiddleware  -- 400 for unexpected Host headers

Lifespan builds the long-lived collaborators once (EnvelopeCipher,
SessionManager, the pooled httpx.AsyncClient and the StreamingRelay on top of
them) and stores them on app.state. Route handlers receive them from there
instead of constructing anything per request.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.chat import router as chat_router
from api.routes.v1.session import router as session_router
from auth.tokens import SessionManager, clear_session_cookies
from core.config import get_settings
from core.crypto import EnvelopeCipher
from core.errors import RelayError
from core.redaction import install_redaction
from relay.stream import StreamingRelay

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
install_redaction()
logger = logging.getLogger("keyrelay.api")

_settings = get_settings()


def build_upstream_client(timeout: float, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Create the shared client for chat backend calls.

    read=timeout bounds the silence between two streamed chunks; the wait for
    the response head is bounded separately by StreamingRelay's deadline.
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=10.0),
        follow_redirects=False,
        transport=transport,
    )


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build shared collaborators on startup, close the HTTP pool on shutdown."""
    logger.info("KeyRelay API starting up")
    app.state.cipher = EnvelopeCipher(_settings.encryption_secret)
    app.state.sessions = SessionManager(_settings.session_secret, _settings.session_ttl_seconds)
    app.state.upstream = build_upstream_client(_settings.chat_timeout_seconds)
    app.state.relay = StreamingRelay(
        app.state.sessions,
        app.state.cipher,
        app.state.upstream,
        _settings.chat_url,
        timeout=_settings.chat_timeout_seconds,
    )
    logger.info("Relay initialized (upstream=%s)", _settings.upstream_base_url)

    yield

    await app.state.upstream.aclose()
    logger.info("KeyRelay API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="KeyRelay API",
    description="Custodial API key sessions and streaming chat relay.",
    version=__version__,
    lifespan=lifespan,
    # No public schema browser in production.
    docs_url="/docs" if _settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the existing stack, so the request meets these in
# reverse registration order.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    # Cookies must travel with cross-origin requests from the UI.
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type"],
    expose_headers=["X-Model-Used"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# One line per request: method, path, status, time to response head, client.
# For the chat stream the time is measured to the first header, not to the
# end of the body. Bodies and cookies are never logged.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    client_host = request.client.host if request.client else "-"
    model = response.headers.get("X-Model-Used")
    if model:
        logger.info(
            "%s %s -> %d in %.1fms [%s] model=%s",
            request.method, request.url.path, response.status_code, elapsed_ms, client_host, model,
        )
    else:
        logger.info(
            "%s %s -> %d in %.1fms [%s]",
            request.method, request.url.path, response.status_code, elapsed_ms, client_host,
        )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(session_router, prefix="/api/v1", tags=["Session"])
app.include_router(chat_router, prefix="/api/v1", tags=["Chat"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler goes through _error_response() so all non-2xx JSON bodies
# share the {"error": {"code", "message", "detail"}} envelope. The key
# submission route is the one exception: it returns its own form-shaped
# failure body directly.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    envelope = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Render a RelayError. Session failures also delete both cookies."""
    response = _error_response(exc.status_code, exc.code, exc.message, exc.action)
    if exc.clear_session:
        clear_session_cookies(response)
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s (%s)", request.url.path, exc.detail)
    response = _error_response(429, "too_many_requests", "Too many requests.", "Wait a minute before retrying.")
    response.headers["Retry-After"] = "60"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report which fields failed, never what they contained.

    Pydantic error entries carry the rejected input; on the key submission
    route that input is the secret itself.
    """
    locations = sorted({".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()})
    detail = f"Invalid fields: {', '.join(locations)}" if locations else None
    return _error_response(422, "validation_error", "Request validation failed.", detail)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure server-side (redacted) and answer with a fixed 500 body."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "Failed to process request. Please try again.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Registered on the app itself so it stays reachable if a router fails to
# mount. Not rate limited: load balancer health checks must never see a 429.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=__version__)
