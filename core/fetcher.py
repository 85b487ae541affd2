"""
fetcher.py -- Liveness check against the provider's model-list endpoint.

One GET per submitted key, no retries. A failed check is surfaced to the
caller immediately: retrying a credential-bearing call against a possibly
revoked or throttled key only amplifies provider-side throttling.

The key travels only in the Authorization header of this one request. It is
never put in a URL, never logged, and the provider's error body is logged
only after sanitize_string() and truncation.
"""

import logging
import time

import requests

from core.errors import QuotaExceeded, RateLimited, RelayError, Unauthorized, UpstreamError, UpstreamTimeout
from core.models import LivenessResult, LivenessStatus
from core.redaction import sanitize_string

logger = logging.getLogger("keyrelay.fetcher")

DEFAULT_PROVIDER_URL = "https://api.openai.com/v1"

# Module-level session shared across liveness calls for connection pooling.
# max_redirects=3 replaces the requests default of 30 -- the provider is a
# known public API and a long redirect chain would carry the bearer header
# somewhere unexpected.
_session = requests.Session()
_session.max_redirects = 3

_ERROR_EXCERPT_BYTES = 200

_STATUS_MAP = {
    401: LivenessStatus.unauthorized,
    403: LivenessStatus.quota_exceeded,
    429: LivenessStatus.rate_limited,
}


def check_key_liveness(api_key: str, base_url: str = DEFAULT_PROVIDER_URL, timeout: float = 10.0) -> LivenessResult:
    """Confirm the provider currently accepts api_key.

    Args:
        api_key:  A key that already passed validate_key_format().
        base_url: Provider API root; "/models" is appended.
        timeout:  Total seconds for the call. requests only bounds each
                  phase, so the budget is split between connect and the
                  response head, the success body is never read, and a head
                  that lands past the deadline counts as a timeout. On expiry
                  the connection is closed, not left dangling.
    """
    url = f"{base_url.rstrip('/')}/models"
    deadline = time.monotonic() + timeout
    try:
        resp = _session.get(
            url,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            timeout=(timeout / 2, timeout / 2),
            stream=True,
        )
    except requests.Timeout:
        logger.warning("Liveness check timed out after %.0fs", timeout)
        return LivenessResult(LivenessStatus.timeout)
    except requests.RequestException as e:
        logger.warning("Liveness check failed: %s", type(e).__name__)
        return LivenessResult(LivenessStatus.upstream_error)

    with resp:
        if time.monotonic() > deadline:
            logger.warning("Liveness check exceeded %.0fs before the response head", timeout)
            return LivenessResult(LivenessStatus.timeout)
        if resp.ok:
            return LivenessResult(LivenessStatus.live, resp.status_code)
        logger.warning(
            "Provider rejected key during liveness check: %d %s",
            resp.status_code,
            sanitize_string(_error_excerpt(resp)),
        )
    return LivenessResult(_STATUS_MAP.get(resp.status_code, LivenessStatus.upstream_error), resp.status_code)


def _error_excerpt(resp: requests.Response) -> str:
    """First few hundred bytes of an error body, one bounded read at most."""
    try:
        chunk = next(resp.iter_content(_ERROR_EXCERPT_BYTES), b"")
    except requests.RequestException as e:
        return f"<body unreadable: {type(e).__name__}>"
    return chunk[:_ERROR_EXCERPT_BYTES].decode("utf-8", errors="replace")


def liveness_error(result: LivenessResult) -> RelayError:
    """Map a failed LivenessResult onto the client-visible error."""
    if result.status is LivenessStatus.unauthorized:
        return Unauthorized()
    if result.status is LivenessStatus.rate_limited:
        return RateLimited()
    if result.status is LivenessStatus.quota_exceeded:
        return QuotaExceeded()
    if result.status is LivenessStatus.timeout:
        return UpstreamTimeout()
    return UpstreamError(result.http_status)
