"""
auth/lockout.py -- Per-account consecutive-failure tracking and lockout.

State machine per identifier (normalized email):

  Unlocked(n) --failure--> Unlocked(n+1)            if n+1 < threshold
  Unlocked(n) --failure--> Locked(now + duration)   if n+1 >= threshold
  Locked(until) --read at now >= until--> Unlocked(0)
  Unlocked(n) --success--> Unlocked(0)

The Locked -> Unlocked transition is lazy: it happens on the next read or
write of the record, never in a background sweep.

Every read-modify-write runs under a per-identifier lock, so parallel
failures for one account each see the previous one's increment and the
threshold cannot be skipped.

When LOCKOUT_ENABLED is false, failures are still counted but is_locked()
always answers unlocked.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.models import LockStatus, LoginAttemptRecord
from core.clock import Clock, ms, to_ms, utcnow
from core.config import Settings
from core.locks import KeyedLock
from core.masking import EmailMasker
from core.result import Result, success

logger = logging.getLogger("sessionguard.lockout")


class LoginAttemptStore(Protocol):
    """Storage contract for LoginAttemptRecord. See auth.store.SqlLoginAttemptStore."""

    def get(self, identifier: str) -> LoginAttemptRecord | None: ...

    def save(self, record: LoginAttemptRecord) -> None: ...

    def delete(self, identifier: str) -> None: ...


class MemoryLoginAttemptStore:
    """Process-local LoginAttemptStore. State is lost on restart."""

    def __init__(self) -> None:
        self._records: dict[str, LoginAttemptRecord] = {}

    def get(self, identifier: str) -> LoginAttemptRecord | None:
        record = self._records.get(identifier)
        if record is None:
            return None
        # Copy so callers mutate only what they save.
        return LoginAttemptRecord(
            identifier=record.identifier,
            failure_count=record.failure_count,
            last_failure_at=record.last_failure_at,
            locked_until=record.locked_until,
        )

    def save(self, record: LoginAttemptRecord) -> None:
        self._records[record.identifier] = record

    def delete(self, identifier: str) -> None:
        self._records.pop(identifier, None)


class LoginAttemptService:
    def __init__(
        self,
        settings: Settings,
        store: LoginAttemptStore | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.enabled = settings.lockout_enabled
        self.threshold = settings.lockout_threshold
        self.duration = ms(settings.lockout_duration_ms)
        self._store = store if store is not None else MemoryLoginAttemptStore()
        self._clock = clock
        self._locks = KeyedLock()
        self._mask = EmailMasker(settings.log_mask_pii)

    def is_locked(self, identifier: str) -> Result[LockStatus]:
        """Report whether identifier is locked and, if so, for how much longer."""
        if not self.enabled:
            return success(LockStatus(locked=False, failure_count=0, remaining_attempts=self.threshold))

        with self._locks.hold(identifier):
            now = self._clock()
            record = self._current(identifier, now)

        if record is None:
            return success(LockStatus(locked=False, failure_count=0, remaining_attempts=self.threshold))
        if record.locked_until is not None:
            return success(
                LockStatus(
                    locked=True,
                    failure_count=record.failure_count,
                    remaining_attempts=0,
                    retry_after_ms=to_ms(record.locked_until - now),
                )
            )
        return success(
            LockStatus(
                locked=False,
                failure_count=record.failure_count,
                remaining_attempts=max(0, self.threshold - record.failure_count),
            )
        )

    def record_failure(self, identifier: str) -> None:
        with self._locks.hold(identifier):
            now = self._clock()
            record = self._current(identifier, now) or LoginAttemptRecord(identifier=identifier)
            if record.locked_until is not None:
                # Already locked; the window is not extended by further attempts.
                record.last_failure_at = now
                self._store.save(record)
                return
            record.failure_count += 1
            record.last_failure_at = now
            if record.failure_count >= self.threshold:
                record.locked_until = now + self.duration
            self._store.save(record)

        if record.locked_until is not None:
            logger.warning(
                "Account locked after %d consecutive failures (account=%s until=%s)",
                record.failure_count,
                self._mask(identifier),
                record.locked_until.isoformat(),
            )
        else:
            logger.info(
                "Sign-in failure recorded (account=%s failures=%d/%d)",
                self._mask(identifier),
                record.failure_count,
                self.threshold,
            )

    def record_success(self, identifier: str) -> None:
        with self._locks.hold(identifier):
            if self._store.get(identifier) is not None:
                self._store.delete(identifier)

    def reset(self, identifier: str) -> None:
        """Administrative unlock: clears the counter and any active lock."""
        with self._locks.hold(identifier):
            self._store.delete(identifier)
        logger.info("Lockout state reset (account=%s)", self._mask(identifier))

    def _current(self, identifier: str, now) -> LoginAttemptRecord | None:
        """Load the record, applying the lazy Locked -> Unlocked(0) transition.

        Caller must hold the identifier's lock.
        """
        record = self._store.get(identifier)
        if record is None:
            return None
        if record.locked_until is not None and now >= record.locked_until:
            self._store.delete(identifier)
            return None
        return record
