"""
auth/service.py -- Composition root for the authentication core.

AuthService builds every component from one Settings instance by explicit
constructor injection and exposes the inbound operations:

    sign_in(email, password, source_ip)              -> Result[SignInResult]
    validate_session(identity_id, session_id, token) -> Result[Identity]
    sign_out(identity_id, session_id, token)         -> Result[None]
    refresh_session(identity_id, session_id, reset)  -> Result[IssuedSession]
    change_password(identity_id, current, new)       -> Result[None]
    create_identity(email, name, password)           -> Result[Identity]

Usage:
    service = AuthService.from_settings(get_settings())
    result = service.sign_in("a@x.com", "secret", "203.0.113.7")
    service.close()
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import Engine

from auth.accounts import AccountService
from auth.hashing import HashService, TokenDigester
from auth.lockout import LoginAttemptService, LoginAttemptStore
from auth.models import Identity, IssuedSession, SignInResult
from auth.rate_limit import RateLimitService
from auth.sessions import SessionRefresher, SessionValidator, SignOutService
from auth.signin import SignInOrchestrator
from auth.store import IdentityStore, SessionStore, SqlLoginAttemptStore, create_auth_engine
from auth.tokens import TokenIssuer
from core.clock import Clock, utcnow
from core.config import Settings
from core.result import Result

logger = logging.getLogger("sessionguard.auth")


class AuthService:
    def __init__(
        self,
        settings: Settings,
        engine: Engine,
        clock: Clock = utcnow,
        attempt_store: LoginAttemptStore | None = None,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.clock = clock

        self.identities = IdentityStore(engine)
        self.sessions = SessionStore(engine)
        self.hasher = HashService(settings.hash_cost_factor)
        self.digester = TokenDigester(settings.secret_key)
        self.issuer = TokenIssuer(settings, self.digester, clock=clock)
        self.rate_limiter = RateLimitService(settings, clock=clock)
        self.attempts = LoginAttemptService(
            settings,
            store=attempt_store if attempt_store is not None else SqlLoginAttemptStore(engine),
            clock=clock,
        )

        self.signin = SignInOrchestrator(
            settings,
            rate_limiter=self.rate_limiter,
            attempts=self.attempts,
            identities=self.identities,
            hasher=self.hasher,
            issuer=self.issuer,
            sessions=self.sessions,
        )
        self.validator = SessionValidator(self.sessions, self.identities, self.digester, clock=clock)
        self.signout = SignOutService(self.validator, self.sessions)
        self.refresher = SessionRefresher(self.sessions, self.issuer, self.digester, clock=clock)
        self.accounts = AccountService(
            settings,
            identities=self.identities,
            sessions=self.sessions,
            hasher=self.hasher,
            attempts=self.attempts,
            clock=clock,
        )

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = utcnow) -> "AuthService":
        """Open DATABASE_URL (creating tables as needed) and wire the service."""
        return cls(settings, create_auth_engine(settings.database_url), clock=clock)

    # ------------------------------------------------------------------
    # Inbound operations
    # ------------------------------------------------------------------

    def sign_in(self, email: str, password: str, source_ip: str, timeout: float | None = None) -> Result[SignInResult]:
        return self.signin.execute(email, password, source_ip, timeout=timeout)

    def validate_session(self, identity_id: str, session_id: str, token: str) -> Result[Identity]:
        return self.validator.validate(identity_id, session_id, token)

    def sign_out(self, identity_id: str, session_id: str, token: str) -> Result[None]:
        return self.signout.execute(identity_id, session_id, token)

    def refresh_session(self, identity_id: str, session_id: str, reset_token: str) -> Result[IssuedSession]:
        return self.refresher.execute(identity_id, session_id, reset_token)

    def change_password(self, identity_id: str, current_password: str, new_password: str) -> Result[None]:
        return self.accounts.change_password(identity_id, current_password, new_password)

    def create_identity(self, email: str, name: str, password: str) -> Result[Identity]:
        return self.accounts.create_identity(email, name, password)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired_sessions(self) -> int:
        """Delete dead sessions and drop elapsed rate-limit windows.

        Returns the number of sessions removed.
        """
        removed = self.sessions.purge_expired(self.clock())
        logger.info("Purged %d expired sessions", removed)
        self.rate_limiter.cleanup()
        return removed

    def close(self) -> None:
        self.engine.dispose()
