"""
auth/rate_limit.py -- Per-source fixed-window throttling for sign-in.

First line of defense, evaluated before any credential work: it bounds how
many sign-in attempts one client IP can make per window regardless of which
accounts it targets. It never reads or writes identity or lockout state.

Algorithm (fixed window):
  - no record, or now - window_start >= window: start a new window at now
    with count = 1, allow.
  - otherwise increment; the call is rejected once count exceeds max.
  - count saturates at max + 1, so sustained abuse does not grow it.

Records live in process memory. They are ephemeral by nature (losing them on
restart only resets windows early); a multi-process deployment should front
this with a shared store.
"""

from __future__ import annotations

import logging

from auth.models import RateLimitRecord
from core.clock import Clock, ms, to_ms, utcnow
from core.config import Settings
from core.locks import KeyedLock
from core.result import ErrorCode, Result, failure, success

logger = logging.getLogger("sessionguard.ratelimit")


class RateLimitService:
    """Fixed-window counter keyed by source identifier.

    Usage:
        limiter = RateLimitService(settings)
        result = limiter.check("203.0.113.7")
        if not result.ok:
            ...  # result.code == ErrorCode.RATE_LIMITED
    """

    def __init__(self, settings: Settings, clock: Clock = utcnow) -> None:
        self.enabled = settings.rate_limit_enabled
        self.max_requests = settings.rate_limit_max
        self.window = ms(settings.rate_limit_window_ms)
        self._clock = clock
        self._records: dict[str, RateLimitRecord] = {}
        self._locks = KeyedLock()

    def check(self, source_id: str) -> Result[None]:
        """Count one request from source_id and decide whether it may proceed."""
        if not self.enabled:
            return success(None)

        with self._locks.hold(source_id):
            now = self._clock()
            record = self._records.get(source_id)
            if record is None or now - record.window_start >= self.window:
                self._records[source_id] = RateLimitRecord(count=1, window_start=now)
                return success(None)

            if record.count <= self.max_requests:
                record.count += 1
            if record.count <= self.max_requests:
                return success(None)

            retry_after_ms = to_ms(record.window_start + self.window - now)

        logger.warning(
            "Rate limit exceeded (source=%s limit=%d retry_after_ms=%d)",
            source_id,
            self.max_requests,
            retry_after_ms,
        )
        return failure(
            "Too many requests. Try again later.",
            ErrorCode.RATE_LIMITED,
            retry_after_ms=retry_after_ms,
            limit=self.max_requests,
        )

    def reset(self, source_id: str) -> None:
        """Forget source_id's window."""
        with self._locks.hold(source_id):
            self._records.pop(source_id, None)

    def cleanup(self) -> int:
        """Drop records whose window has elapsed. Returns the number removed.

        Expired windows are also replaced lazily on the next check. AuthService
        calls this from its periodic purge so sources that never return do not
        stay in memory.
        """
        now = self._clock()
        removed = 0
        for source_id in list(self._records):
            with self._locks.hold(source_id):
                record = self._records.get(source_id)
                if record is not None and now - record.window_start >= self.window:
                    del self._records[source_id]
                    removed += 1
        if removed:
            logger.info("Rate limit cleanup removed %d expired windows (%d remaining)", removed, len(self._records))
        return removed

    def peek(self, source_id: str) -> RateLimitRecord | None:
        """Current record for source_id, for diagnostics and tests."""
        return self._records.get(source_id)

    def __len__(self) -> int:
        return len(self._records)
