"""
auth/accounts.py -- Identity lifecycle: creation and password change.

Both operations enforce the password policy from auth.validation and return
a Result. Changing a password revokes every session of the identity, so a
stolen session token stops working as soon as the owner rotates credentials.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.hashing import HashService
from auth.lockout import LoginAttemptService
from auth.models import Identity
from auth.store import IdentityStore, SessionStore
from auth.validation import email_error, normalize_email, password_error
from core.clock import Clock, utcnow
from core.config import Settings
from core.masking import EmailMasker
from core.result import ErrorCode, Failure, Result, failure, success

logger = logging.getLogger("sessionguard.auth")


class AccountService:
    def __init__(
        self,
        settings: Settings,
        identities: IdentityStore,
        sessions: SessionStore,
        hasher: HashService,
        attempts: LoginAttemptService,
        clock: Clock = utcnow,
    ) -> None:
        self._settings = settings
        self._identities = identities
        self._sessions = sessions
        self._hasher = hasher
        self._attempts = attempts
        self._clock = clock
        self._mask = EmailMasker(settings.log_mask_pii)

    def create_identity(self, email: str, name: str, password: str) -> Result[Identity]:
        """Register a new identity with a bcrypt digest of password."""
        email = normalize_email(email or "")
        name = (name or "").strip()
        problem = email_error(email)
        if problem is None and not name:
            problem = "Name is required."
        if problem is None:
            problem = password_error(password or "", self._settings, email=email, name=name)
        if problem is not None:
            return failure(problem, ErrorCode.VALIDATION_ERROR)

        try:
            if self._identities.get_by_email(email) is not None:
                return failure("An identity with this email already exists.", ErrorCode.VALIDATION_ERROR)
            identity = Identity(email=email, name=name, password_digest=self._hasher.hash(password))
            try:
                identity = self._identities.create_identity(identity, self._clock())
            except IntegrityError:
                return failure("An identity with this email already exists.", ErrorCode.VALIDATION_ERROR)
        except Exception:
            logger.exception("Unexpected error creating identity (account=%s)", self._mask(email))
            return failure("An unexpected error occurred.", ErrorCode.UNEXPECTED_ERROR)

        logger.info("Identity created (identity=%s account=%s)", identity.id, self._mask(email))
        return success(identity)

    def change_password(self, identity_id: str, current_password: str, new_password: str) -> Result[None]:
        """Replace the password after proving knowledge of the current one.

        A wrong current password counts toward the account's lockout, the same
        as a failed sign-in.
        """
        try:
            return self._change_password(identity_id, current_password or "", new_password or "")
        except Exception:
            logger.exception("Unexpected error changing password (identity=%s)", identity_id)
            return failure("An unexpected error occurred.", ErrorCode.UNEXPECTED_ERROR)

    def _change_password(self, identity_id: str, current_password: str, new_password: str) -> Result[None]:
        identity = self._identities.get_by_id(identity_id)
        if identity is None:
            return failure("Identity does not exist.", ErrorCode.IDENTITY_NOT_FOUND)

        status = self._attempts.is_locked(identity.email)
        if isinstance(status, Failure):
            return status
        if status.data.locked:
            return failure(
                "Account is temporarily locked. Try again later.",
                ErrorCode.ACCOUNT_LOCKED,
                retry_after_ms=status.data.retry_after_ms,
            )

        if not self._hasher.verify(current_password, identity.password_digest):
            self._attempts.record_failure(identity.email)
            logger.info("Password change rejected: wrong current password (identity=%s)", identity_id)
            return failure("Current password is incorrect.", ErrorCode.INVALID_CREDENTIALS)
        self._attempts.record_success(identity.email)

        problem = password_error(new_password, self._settings, email=identity.email, name=identity.name)
        if problem is not None:
            return failure(problem, ErrorCode.VALIDATION_ERROR)
        if self._hasher.verify(new_password, identity.password_digest):
            return failure("New password must differ from the current password.", ErrorCode.VALIDATION_ERROR)

        self._identities.update_password(identity_id, self._hasher.hash(new_password), self._clock())
        revoked = self._sessions.delete_for_identity(identity_id)
        logger.info("Password changed (identity=%s sessions_revoked=%d)", identity_id, revoked)
        return success(None)
