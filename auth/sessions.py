"""
auth/sessions.py -- Validating, ending and rotating issued sessions.

SessionValidator runs on every authenticated request:
  find_first(identity_id, session_id)   None -> SESSION_NOT_FOUND
  now >= access_expires_at              -> SESSION_EXPIRED (boundary inclusive)
  HMAC digest mismatch                  -> SESSION_INVALID
  owning identity gone                  -> IDENTITY_NOT_FOUND
  otherwise                             -> Success(identity)

SignOutService validates first and then deletes, so a caller cannot end a
session it cannot prove it holds.

SessionRefresher trades a valid reset token for a brand-new session. Sessions
are never updated in place: SessionStore.rotate() deletes the old row and
inserts the new one in one transaction. The delete is conditional on the
reset digest, so of two concurrent refreshes with one token only the first
mints a session. In-process callers also serialize on a per-session lock.
"""

from __future__ import annotations

import logging

from auth.hashing import TokenDigester
from auth.models import Identity, IssuedSession
from auth.store import IdentityStore, SessionStore
from auth.tokens import TokenIssuer
from core.clock import Clock, utcnow
from core.locks import KeyedLock
from core.result import ErrorCode, Failure, Result, failure, success

logger = logging.getLogger("sessionguard.auth")


class SessionValidator:
    def __init__(
        self,
        sessions: SessionStore,
        identities: IdentityStore,
        digester: TokenDigester,
        clock: Clock = utcnow,
    ) -> None:
        self._sessions = sessions
        self._identities = identities
        self._digester = digester
        self._clock = clock

    def validate(self, identity_id: str, session_id: str, presented_access_token: str) -> Result[Identity]:
        try:
            return self._validate(identity_id, session_id, presented_access_token)
        except Exception:
            logger.exception("Unexpected error validating session %s", session_id)
            return failure("An unexpected error occurred.", ErrorCode.UNEXPECTED_ERROR)

    def _validate(self, identity_id: str, session_id: str, presented_access_token: str) -> Result[Identity]:
        session = self._sessions.find_first(identity_id, session_id)
        if session is None:
            return failure("Session not found.", ErrorCode.SESSION_NOT_FOUND)
        if session.is_access_expired(self._clock()):
            return failure("Session has expired.", ErrorCode.SESSION_EXPIRED)
        if not self._digester.matches(presented_access_token, session.access_token_digest):
            logger.warning("Access token mismatch for session %s (identity=%s)", session_id, identity_id)
            return failure("Session token is invalid.", ErrorCode.SESSION_INVALID)
        identity = self._identities.get_by_id(identity_id)
        if identity is None:
            return failure("Identity does not exist.", ErrorCode.IDENTITY_NOT_FOUND)
        return success(identity)


class SignOutService:
    def __init__(self, validator: SessionValidator, sessions: SessionStore) -> None:
        self._validator = validator
        self._sessions = sessions

    def execute(self, identity_id: str, session_id: str, presented_access_token: str) -> Result[None]:
        validated = self._validator.validate(identity_id, session_id, presented_access_token)
        if isinstance(validated, Failure):
            return validated
        try:
            self._sessions.delete(identity_id, session_id)
        except Exception:
            logger.exception("Unexpected error deleting session %s", session_id)
            return failure("An unexpected error occurred.", ErrorCode.UNEXPECTED_ERROR)
        logger.info("Signed out (identity=%s session=%s)", identity_id, session_id)
        return success(None)


class SessionRefresher:
    def __init__(
        self,
        sessions: SessionStore,
        issuer: TokenIssuer,
        digester: TokenDigester,
        clock: Clock = utcnow,
    ) -> None:
        self._sessions = sessions
        self._issuer = issuer
        self._digester = digester
        self._clock = clock
        self._locks = KeyedLock()

    def execute(self, identity_id: str, session_id: str, presented_reset_token: str) -> Result[IssuedSession]:
        try:
            return self._execute(identity_id, session_id, presented_reset_token)
        except Exception:
            logger.exception("Unexpected error refreshing session %s", session_id)
            return failure("An unexpected error occurred.", ErrorCode.UNEXPECTED_ERROR)

    def _execute(self, identity_id: str, session_id: str, presented_reset_token: str) -> Result[IssuedSession]:
        with self._locks.hold(session_id):
            session = self._sessions.find_first(identity_id, session_id)
            if session is None:
                return failure("Session not found.", ErrorCode.SESSION_NOT_FOUND)
            if session.is_reset_expired(self._clock()):
                return failure("Session has expired.", ErrorCode.SESSION_EXPIRED)
            if not self._digester.matches(presented_reset_token, session.reset_token_digest):
                logger.warning("Reset token mismatch for session %s (identity=%s)", session_id, identity_id)
                return failure("Reset token is invalid.", ErrorCode.SESSION_INVALID)

            issued = self._issuer.issue_session(identity_id)
            rotated = self._sessions.rotate(
                identity_id, session_id, session.reset_token_digest, self._issuer.to_session(issued)
            )
        if isinstance(rotated, Failure):
            # Already claimed and owner gone pass through; anything else is a system error.
            if rotated.code in (ErrorCode.SESSION_NOT_FOUND, ErrorCode.IDENTITY_NOT_FOUND):
                return rotated
            return failure("Could not create a session.", ErrorCode.UNEXPECTED_ERROR, cause=rotated.code)
        logger.info("Session rotated (identity=%s old=%s new=%s)", identity_id, session_id, issued.session_id)
        return success(issued)
