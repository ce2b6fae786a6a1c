"""
auth/signin.py -- Sign-in orchestration.

Composes the rate limiter, the identity lookup, the lockout tracker, bcrypt
verification and session issuance into one call that always returns a Result.

Sequence (each step short-circuits):
  1. RateLimitService.check(source_ip)            -> RATE_LIMITED
  2. email/password shape                         -> VALIDATION_ERROR
  3. identity lookup by normalized email; when absent, verify against the
     dummy digest first                           -> INVALID_CREDENTIALS
  4. LoginAttemptService.is_locked(email)         -> ACCOUNT_LOCKED
  5. HashService.verify; on mismatch record_failure first
                                                  -> INVALID_CREDENTIALS
  6. record_success, issue tokens, SessionStore.create -> Success

Security:
  An unknown email and a wrong password produce the same code and message,
  and both run exactly one bcrypt verification, so neither the response nor
  its timing reveals whether an account exists.

  A session-store failure after the password was verified is a system error
  (UNEXPECTED_ERROR), never INVALID_CREDENTIALS: the caller must not be told
  the password was wrong when it was right.

  The optional timeout bounds the whole call. It is checked between steps;
  once expired the call returns UNEXPECTED_ERROR and is not retried, because a
  retry after a recorded failure would count that failure twice.
"""

from __future__ import annotations

import logging
import time

from auth.hashing import HashService
from auth.lockout import LoginAttemptService
from auth.models import SignInResult
from auth.rate_limit import RateLimitService
from auth.store import IdentityStore, SessionStore
from auth.tokens import TokenIssuer
from auth.validation import email_error, normalize_email
from core.config import Settings
from core.masking import EmailMasker
from core.result import ErrorCode, Failure, Result, failure, success

logger = logging.getLogger("sessionguard.auth")

_INVALID_CREDENTIALS_MESSAGE = "Invalid email or password."


class OperationTimeout(Exception):
    """The caller-supplied deadline passed between two steps."""


class _Deadline:
    def __init__(self, timeout: float | None) -> None:
        self._expires = None if timeout is None else time.monotonic() + timeout

    def check(self, step: str) -> None:
        if self._expires is not None and time.monotonic() >= self._expires:
            raise OperationTimeout(step)


class SignInOrchestrator:
    def __init__(
        self,
        settings: Settings,
        rate_limiter: RateLimitService,
        attempts: LoginAttemptService,
        identities: IdentityStore,
        hasher: HashService,
        issuer: TokenIssuer,
        sessions: SessionStore,
    ) -> None:
        self._settings = settings
        self._rate_limiter = rate_limiter
        self._attempts = attempts
        self._identities = identities
        self._hasher = hasher
        self._issuer = issuer
        self._sessions = sessions
        self._mask = EmailMasker(settings.log_mask_pii)

    def execute(
        self,
        email: str,
        password: str,
        source_ip: str,
        timeout: float | None = None,
    ) -> Result[SignInResult]:
        """Authenticate email/password from source_ip and open a session.

        Never raises. Unexpected exceptions (storage unreachable, a broken
        invariant) are logged with their traceback and returned as
        UNEXPECTED_ERROR.
        """
        normalized = normalize_email(email or "")
        try:
            return self._execute(normalized, password, source_ip, _Deadline(timeout))
        except OperationTimeout as exc:
            logger.error("Sign-in timed out before step %r (account=%s)", str(exc), self._mask(normalized))
            return failure("Sign-in timed out.", ErrorCode.UNEXPECTED_ERROR)
        except Exception:
            logger.exception("Unexpected error during sign-in (account=%s)", self._mask(normalized))
            return failure("An unexpected error occurred.", ErrorCode.UNEXPECTED_ERROR)

    def _execute(self, email: str, password: str, source_ip: str, deadline: _Deadline) -> Result[SignInResult]:
        # 1. Per-IP throttle, ahead of any credential work.
        deadline.check("rate_limit")
        limited = self._rate_limiter.check(source_ip)
        if isinstance(limited, Failure):
            return limited

        # 2. Input shape.
        problem = email_error(email)
        if problem is None and not password:
            problem = "Password is required."
        if problem is None and len(password) > self._settings.password_max_length:
            problem = "Password is too long."
        if problem is not None:
            logger.info("Sign-in rejected: %s (source=%s)", problem, source_ip)
            return failure(problem, ErrorCode.VALIDATION_ERROR)

        # 3. Identity lookup; equalize timing when absent.
        deadline.check("lookup")
        identity = self._identities.get_by_email(email)
        if identity is None:
            self._hasher.verify_dummy(password)
            logger.info("Sign-in failed: invalid credentials (account=%s source=%s)", self._mask(email), source_ip)
            return failure(_INVALID_CREDENTIALS_MESSAGE, ErrorCode.INVALID_CREDENTIALS)

        # 4. Lockout.
        deadline.check("lockout")
        status = self._attempts.is_locked(email)
        if isinstance(status, Failure):
            return status
        if status.data.locked:
            logger.warning(
                "Sign-in rejected: account locked (account=%s retry_after_ms=%s)",
                self._mask(email),
                status.data.retry_after_ms,
            )
            return failure(
                "Account is temporarily locked. Try again later.",
                ErrorCode.ACCOUNT_LOCKED,
                retry_after_ms=status.data.retry_after_ms,
            )

        # 5. Credential check. Failure bookkeeping happens before returning.
        deadline.check("verify")
        if not self._hasher.verify(password, identity.password_digest):
            self._attempts.record_failure(email)
            logger.info("Sign-in failed: invalid credentials (account=%s source=%s)", self._mask(email), source_ip)
            return failure(_INVALID_CREDENTIALS_MESSAGE, ErrorCode.INVALID_CREDENTIALS)

        # 6. Success bookkeeping only after verification passed.
        deadline.check("issue")
        self._attempts.record_success(email)
        issued = self._issuer.issue_session(identity.id)
        created = self._sessions.create(self._issuer.to_session(issued))
        if isinstance(created, Failure):
            logger.error(
                "Session creation failed after verified sign-in (identity=%s code=%s)",
                identity.id,
                created.code,
            )
            return failure("Could not create a session.", ErrorCode.UNEXPECTED_ERROR, cause=created.code)

        logger.info("Sign-in succeeded (identity=%s session=%s)", identity.id, issued.session_id)
        return success(
            SignInResult(
                identity=identity,
                session_id=issued.session_id,
                raw_access_token=issued.raw_access_token,
                access_expires_at=issued.access_expires_at,
                raw_reset_token=issued.raw_reset_token,
                reset_expires_at=issued.reset_expires_at,
            )
        )
