"""
api/limiter.py -- Shared slowapi rate limiter instance.

This is the coarse, per-client ceiling applied by SlowAPIMiddleware to every
route (API_RATE_LIMIT, default 60/minute). Sign-in is exempt here because it
is governed by the core's own RateLimitService (RATE_LIMIT_MAX per
RATE_LIMIT_WINDOW_MS), which returns RATE_LIMITED through the normal Result
path.

Using a single shared instance ensures all routes share the same in-memory
counter store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings


def _api_rate_limit() -> str:
    return get_settings().api_rate_limit


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[_api_rate_limit],
    storage_uri="memory://",
)
