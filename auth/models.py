"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data containers). Stores and services do the work;
the only logic here is Session's invariant check, which rejects a record that
could never be valid before it reaches storage.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Identity:
    """A principal that can sign in.

    email is always stored normalized (see auth.validation.normalize_email).
    password_digest is a bcrypt digest; the raw password is never held.
    """

    email: str
    name: str
    password_digest: str
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Session:
    """One authenticated context, owned by exactly one identity.

    Only the HMAC digests of the access and reset tokens are stored. The raw
    tokens leave the process once, in the sign-in or refresh response.
    """

    id: str
    identity_id: str
    access_token_digest: str
    access_expires_at: datetime
    reset_token_digest: str
    reset_expires_at: datetime
    created_at: datetime
    updated_at: datetime

    def __post_init__(self) -> None:
        if not self.access_token_digest.strip():
            raise ValueError("access_token_digest is required")
        if not self.reset_token_digest.strip():
            raise ValueError("reset_token_digest is required")
        if self.access_expires_at <= self.created_at:
            raise ValueError("access_expires_at must be later than created_at")

    def is_access_expired(self, now: datetime) -> bool:
        # Inclusive: a token presented at the expiry instant is expired.
        return now >= self.access_expires_at

    def is_reset_expired(self, now: datetime) -> bool:
        return now >= self.reset_expires_at


@dataclass
class IssuedSession:
    """TokenIssuer output. Carries the raw tokens, so it is never persisted."""

    session_id: str
    identity_id: str
    raw_access_token: str
    access_expires_at: datetime
    raw_reset_token: str
    reset_expires_at: datetime
    issued_at: datetime


@dataclass
class LoginAttemptRecord:
    """Consecutive-failure state for one account identifier (normalized email)."""

    identifier: str
    failure_count: int = 0
    last_failure_at: datetime | None = None
    locked_until: datetime | None = None


@dataclass
class RateLimitRecord:
    """Fixed-window request counter for one source identifier (client IP)."""

    count: int
    window_start: datetime


@dataclass(frozen=True)
class LockStatus:
    """Answer to LoginAttemptService.is_locked()."""

    locked: bool
    failure_count: int
    remaining_attempts: int
    retry_after_ms: int | None = None


@dataclass(frozen=True)
class SignInResult:
    """Success payload of a sign-in: the identity plus the one-time raw tokens."""

    identity: Identity
    session_id: str
    raw_access_token: str
    access_expires_at: datetime
    raw_reset_token: str
    reset_expires_at: datetime
