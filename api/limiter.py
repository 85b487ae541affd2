"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in the route modules
under api/routes/v1/ (to apply per-route limits with @limiter.limit()).

The key-submission route is the one that matters most: every accepted
request costs one liveness call against the provider with a user's key, so
it gets the tightest limit.

Using a single shared instance ensures all routes share the same in-memory
counter store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
