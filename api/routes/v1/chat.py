"""
api/routes/v1/chat.py -- Streaming chat endpoint.

Routes:
  POST /api/v1/chat/stream -- relay one message upstream, stream the reply back

The route is thin on purpose: StreamingRelay owns verification, decryption,
the upstream call and the byte stream. Any RelayError it raises is rendered
by the handler in api/main.py (401s also delete both cookies).

Response on success: 200, text/plain, body is the upstream body byte for
byte. X-Model-Used names the model actually sent upstream, which may differ
from the requested one after the silent allow-list fallback.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from api.limiter import limiter
from api.models import ChatRequest
from auth.tokens import CREDENTIAL_COOKIE, SESSION_COOKIE
from core.config import get_settings
from relay.stream import StreamingRelay

_settings = get_settings()

# Auth policy:
# - POST /api/v1/chat/stream: requires a valid session cookie pair (checked by the relay)
router = APIRouter()


@router.post("/chat/stream", response_class=StreamingResponse)
@limiter.limit(_settings.chat_rate_limit)
async def chat_stream(request: Request, body: ChatRequest) -> StreamingResponse:
    """Stream the upstream reply to one chat message."""
    relay: StreamingRelay = request.app.state.relay
    stream = await relay.open(
        request.cookies.get(SESSION_COOKIE),
        request.cookies.get(CREDENTIAL_COOKIE),
        body.message,
        model=body.model,
        developer_message=body.developer_message,
    )
    return StreamingResponse(
        stream,
        media_type="text/plain",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Model-Used": stream.model,
        },
        # Runs after the body finished or the client disconnected.
        background=BackgroundTask(stream.aclose),
    )
