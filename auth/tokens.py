"""
auth/tokens.py -- Session token issuance and the signed transport envelope.

TokenIssuer mints the raw access and reset tokens for a new session. Raw
values are returned to the caller exactly once; to_session() converts them
into the storable Session, which carries only HMAC digests.

For HTTP transport the three values a client must present
(identity_id, session_id, raw access token) are wrapped in an HS256 JWT
(python-jose) signed with SECRET_KEY. The JWT is only an envelope: the
authoritative checks (expiry, digest match) happen in SessionValidator
against the stored session, so revoking a session in the store takes effect
even while the JWT's own exp is still in the future.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta

from jose import JWTError, jwt

from auth.hashing import TokenDigester
from auth.models import IssuedSession, Session
from core.clock import Clock, utcnow
from core.config import Settings

_ALGORITHM = "HS256"

# 32 random bytes -> 43 url-safe characters, 256 bits of entropy.
_TOKEN_BYTES = 32


class TokenIssuer:
    """Generate opaque session tokens and their storable representation."""

    def __init__(self, settings: Settings, digester: TokenDigester, clock: Clock = utcnow) -> None:
        self._access_ttl = timedelta(seconds=settings.access_token_max_age)
        self._reset_ttl = timedelta(seconds=settings.session_max_age_seconds)
        self._digester = digester
        self._clock = clock

    def issue_session(self, identity_id: str) -> IssuedSession:
        now = self._clock()
        return IssuedSession(
            session_id=uuid.uuid4().hex,
            identity_id=identity_id,
            raw_access_token=secrets.token_urlsafe(_TOKEN_BYTES),
            access_expires_at=now + self._access_ttl,
            raw_reset_token=secrets.token_urlsafe(_TOKEN_BYTES),
            reset_expires_at=now + self._reset_ttl,
            issued_at=now,
        )

    def to_session(self, issued: IssuedSession) -> Session:
        return Session(
            id=issued.session_id,
            identity_id=issued.identity_id,
            access_token_digest=self._digester.digest(issued.raw_access_token),
            access_expires_at=issued.access_expires_at,
            reset_token_digest=self._digester.digest(issued.raw_reset_token),
            reset_expires_at=issued.reset_expires_at,
            created_at=issued.issued_at,
            updated_at=issued.issued_at,
        )


# ---------------------------------------------------------------------------
# JWT envelope
# ---------------------------------------------------------------------------


def encode_session_token(
    secret_key: str,
    identity_id: str,
    session_id: str,
    raw_access_token: str,
    expires_at: datetime,
) -> str:
    """Sign the session triple into a compact JWT for a cookie or Bearer header."""
    payload = {
        "sub": identity_id,
        "sid": session_id,
        "tok": raw_access_token,
        "exp": expires_at,
    }
    return jwt.encode(payload, secret_key, algorithm=_ALGORITHM)


def decode_session_token(secret_key: str, token: str, verify_exp: bool = True) -> dict | None:
    """Verify and decode a session JWT. Returns None on any failure.

    verify_exp=False is used by the refresh endpoint: a client whose access
    token has expired still needs to name its session to rotate it with the
    reset token. The signature is checked either way.
    """
    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[_ALGORITHM],
            options={"verify_exp": verify_exp},
        )
    except JWTError:
        return None
    if not all(isinstance(payload.get(k), str) for k in ("sub", "sid", "tok")):
        return None
    return payload
