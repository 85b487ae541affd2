"""
relay/stream.py -- Per-message credential recovery and upstream streaming.

One chat request walks this state machine exactly once:

    await_session -> await_decrypt -> await_upstream -> streaming -> done
          \\               \\                \\              \\
           +---------------+----------------+--------------+--> failed

  await_session   verify the signed session cookie (no I/O)
  await_decrypt   open the encrypted-credential cookie (CPU only)
  await_upstream  one POST to the chat backend, bounded by the deadline
  streaming       pull upstream chunks only when the client pulls ours
  done            upstream body exhausted, connection returned to the pool

Security:
  Any failure before await_upstream is reported as SessionExpired -- the
  client cannot tell a missing cookie from a forged token from a blob that
  failed authentication.

  The decrypted key exists only as a local in open() and inside the request
  body handed to httpx. It is never logged and never stored on an object.

Concurrency:
  StreamingRelay holds only read-only collaborators and one pooled
  httpx.AsyncClient, so a single instance serves all requests. There are no
  retries: a credential-bearing call is made at most once per message.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from enum import Enum

import httpx

from auth.tokens import SessionManager
from core.crypto import EnvelopeCipher
from core.errors import DecryptionFailed, InvalidCredential, RelayError, SessionExpired, UpstreamError, UpstreamTimeout
from core.redaction import sanitize_string
from core.validation import prepare_chat

logger = logging.getLogger("keyrelay.relay")

_ERROR_EXCERPT_BYTES = 200


class RelayState(str, Enum):
    await_session = "await_session"
    await_decrypt = "await_decrypt"
    await_upstream = "await_upstream"
    streaming = "streaming"
    done = "done"
    failed = "failed"


class RelayStream:
    """Async byte iterator over one upstream response body.

    Bytes are yielded exactly as received; no framing is added or removed.
    Starlette pulls the next chunk only after the previous one was written to
    the client socket, so a slow reader slows the upstream read too.
    """

    def __init__(self, response: httpx.Response, model: str) -> None:
        self._response = response
        self.model = model
        self.state = RelayState.streaming

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                if chunk:
                    yield chunk
            self.state = RelayState.done
        except httpx.HTTPError as e:
            # Headers are already on the wire; the status cannot change now.
            self.state = RelayState.failed
            logger.warning("Upstream stream interrupted (%s) for model %s", type(e).__name__, self.model)
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Release the upstream connection. Idempotent."""
        if not self._response.is_closed:
            await self._response.aclose()
            if self.state is RelayState.streaming:
                self.state = RelayState.failed
                logger.info("Client went away mid-stream; upstream connection closed")


class StreamingRelay:
    """Verify, decrypt, forward, stream -- one upstream call per chat message."""

    def __init__(
        self,
        sessions: SessionManager,
        cipher: EnvelopeCipher,
        client: httpx.AsyncClient,
        chat_url: str,
        timeout: float = 30.0,
    ) -> None:
        self._sessions = sessions
        self._cipher = cipher
        self._client = client
        self._chat_url = chat_url
        self._timeout = timeout

    @staticmethod
    def _fail(state: RelayState, error: RelayError) -> RelayError:
        logger.info("Relay failed in %s: %s", state.value, error.code)
        return error

    async def open(
        self,
        session_token: str | None,
        encrypted_blob: str | None,
        message: str | None,
        model: str | None = None,
        developer_message: str | None = None,
    ) -> RelayStream:
        """Run the pipeline up to the first upstream byte.

        Returns a RelayStream once the upstream answered 2xx. Raises a
        RelayError subclass for every other outcome.
        """
        state = RelayState.await_session
        claims = self._sessions.verify(session_token)
        if claims is None or not encrypted_blob:
            raise self._fail(state, SessionExpired())

        state = RelayState.await_decrypt
        try:
            credential = self._cipher.decrypt(encrypted_blob)
        except DecryptionFailed:
            raise self._fail(state, SessionExpired()) from None

        chat = prepare_chat(message, model, developer_message)
        logger.info("Using model %s (message length %d)", chat.model, len(chat.message))

        state = RelayState.await_upstream
        request = self._client.build_request(
            "POST",
            self._chat_url,
            json={
                "developer_message": chat.developer_message,
                "user_message": chat.message,
                "model": chat.model,
                "api_key": credential,
            },
        )
        del credential

        try:
            # wait_for cancels send() on expiry, which closes the socket.
            response = await asyncio.wait_for(self._client.send(request, stream=True), timeout=self._timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise self._fail(state, UpstreamTimeout()) from None
        except httpx.HTTPError as e:
            logger.warning("Chat backend unreachable: %s", type(e).__name__)
            raise self._fail(state, UpstreamError()) from None

        if not response.is_success:
            excerpt = await _read_error_excerpt(response)
            logger.error("Chat backend error %d: %s", response.status_code, excerpt)
            if response.status_code == 401:
                raise self._fail(state, InvalidCredential())
            raise self._fail(state, UpstreamError(response.status_code))

        return RelayStream(response, chat.model)


async def _read_error_excerpt(response: httpx.Response) -> str:
    """Read at most a few hundred bytes of an error body for the server log, then close."""
    excerpt = b""
    try:
        async for chunk in response.aiter_bytes():
            excerpt += chunk
            if len(excerpt) >= _ERROR_EXCERPT_BYTES:
                break
    except httpx.HTTPError as e:
        excerpt += f"<body unreadable: {type(e).__name__}>".encode()
    finally:
        await response.aclose()
    return sanitize_string(excerpt[:_ERROR_EXCERPT_BYTES].decode("utf-8", errors="replace"))
